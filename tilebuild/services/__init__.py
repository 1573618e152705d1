"""Pipeline services.

Submodules:
    - workspace: Scratch directory acquisition and guaranteed removal.
    - profiles: Primary and fallback tippecanoe parameter profiles.
    - compiler: tippecanoe invocation and failure classification.
    - builder: Per-chunk download, compile-with-fallback and upload.
    - orchestrator: Ordered (or pooled) run over all chunks.
"""
