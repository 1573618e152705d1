import pathlib
import sys

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parent.parent.parent))

project = 'tilebuild'
copyright = '2025, tilebuild developers'
author = 'tilebuild developers'
release = '0.1.0'

master_doc = 'index'
exclude_patterns = [
    '.venv',
    'venv',
    '.pytest_cache',
    '.ruff_cache',
    '.mypy_cache',
    'temp_processing',
]

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.autosummary',
    'sphinx.ext.viewcode',
    'sphinx_autodoc_typehints',
    'myst_parser',
]

autosummary_generate = True
autosummary_imported_members = False

napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
napoleon_include_private_with_doc = False
napoleon_use_param = True
napoleon_use_ivar = False

html_theme = 'sphinx_rtd_theme'
html_title = 'tilebuild pipeline'

autodoc_default_options = {
    'members': True,
    'undoc-members': False,
    'show-inheritance': True,
    'special-members': False,
}

autodoc_mock_imports = [
    'boto3',
    'botocore',
]

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}

html_theme_options = {
    'prev_next_buttons_location': 'bottom',
}
