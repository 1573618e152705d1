"""Pipeline settings and configuration management.

This module provides Pydantic-based settings management that loads
configuration from environment variables or a .env file. Settings include
the object storage bucket and dataset prefix, the number of chunks to build,
the scratch workspace location, the tippecanoe executable and its output
ceiling, and AWS credentials for the S3 chunk store.

Example:
    Settings can be accessed via the cached get_settings() function:
        >>> from tilebuild.core.config import get_settings
        >>> settings = get_settings()
        >>> print(settings.bucket)

    Environment variables can override defaults:
        >>> TILEBUILD_BUCKET=my-geo-bucket
        >>> TILEBUILD_CHUNK_COUNT=3
        >>> TILEBUILD_COMPILE_TIMEOUT_SECONDS=1800
"""

import functools
import pathlib

import pydantic
import pydantic_settings

MBTILES_CONTENT_TYPE = "application/x-mbtiles"


class Settings(pydantic_settings.BaseSettings):
    """Runtime configuration pulled from environment variables or defaults.

    All settings can be overridden via ``TILEBUILD_``-prefixed environment
    variables or a .env file. Unlike upload directories in a long-running
    service, the workspace directory is not created here: it belongs to a
    single run and is acquired and released by the WorkspaceManager.

    Attributes:
        bucket: Object storage bucket holding source chunks and tilesets.
        dataset_prefix: Key prefix of the dataset inside the bucket.
        chunk_count: Number of ``chunk<N>.geojson`` inputs to build.
        workspace_dir: Scratch directory used for the lifetime of a run.
        tippecanoe_bin: Name or path of the tippecanoe executable.
        max_output_bytes: Ceiling on captured compiler output (500 MiB).
        compile_timeout_seconds: Deadline for one compiler invocation,
            None waits indefinitely.
        max_workers: Chunks built concurrently (1 keeps strict ordering).
        tileset_display_name: Prefix of the tileset ``--name`` per chunk.
        layer_prefix: Prefix of the tileset ``--layer`` per chunk.
        aws_region: Region of the S3 bucket.
        aws_access_key_id: Access key, None uses the default boto3 chain.
        aws_secret_access_key: Secret key paired with aws_access_key_id.
        s3_endpoint_url: Custom endpoint for S3-compatible storage.
        log_level: Root logging level name.

    Example:
        Create settings with custom values:
            >>> settings = Settings(
            ...     bucket="geo-data",
            ...     dataset_prefix="flood-zones",
            ...     chunk_count=3,
            ...     workspace_dir=Path("/scratch/flood"),
            ... )

        Or use environment variables:
            >>> export TILEBUILD_DATASET_PREFIX=flood-zones
            >>> export TILEBUILD_CHUNK_COUNT=3
            >>> settings = Settings()  # Loads from environment
    """

    bucket: str = "cec-geo-data"
    dataset_prefix: str = "epa-ira-disadvantaged-communities"
    chunk_count: int = pydantic.Field(default=7, ge=1)
    workspace_dir: pathlib.Path = pathlib.Path("temp_processing")
    tippecanoe_bin: str = "tippecanoe"
    max_output_bytes: int = pydantic.Field(default=500 * 1024 * 1024, gt=0)
    compile_timeout_seconds: float | None = pydantic.Field(default=None, gt=0)
    max_workers: int = pydantic.Field(default=1, ge=1)
    tileset_display_name: str = "EPA Disadvantaged Communities"
    layer_prefix: str = "epa-disadvantaged"
    aws_region: str | None = None
    aws_access_key_id: str | None = None
    aws_secret_access_key: pydantic.SecretStr | None = None
    s3_endpoint_url: str | None = None
    log_level: str = "INFO"

    model_config = pydantic_settings.SettingsConfigDict(
        env_prefix="TILEBUILD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @pydantic.field_validator("dataset_prefix")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        """Normalise the prefix so keys never contain ``//``."""
        return value.strip("/")


@functools.lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded from environment variables or .env file and cached
    for the lifetime of the process. Subsequent calls return the same
    cached instance.

    Returns:
        Settings instance with all configuration values populated.

    Example:
        The settings are cached, so multiple calls return the same instance:
            >>> settings1 = get_settings()
            >>> settings2 = get_settings()
            >>> assert settings1 is settings2  # Same instance
    """
    return Settings()
