"""Runtime configuration, env-driven via pydantic-settings.

Reads from a .env file and EOPKG_* environment variables.
"""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class EopkgSettings(BaseSettings):
    """Settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export EOPKG_LOG_LEVEL=DEBUG
        export EOPKG_WORK_DIR=/var/tmp/deltas
        export EOPKG_XZ_THREADS=4
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="EOPKG_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Scratch space for delta jobs; each job gets its own subdirectory
    work_dir: Path = Path(tempfile.gettempdir()) / "libeopkg"

    # External xz codec
    xz_binary: str = "xz"
    unxz_binary: str = "unxz"
    xz_level: int = 6
    xz_threads: int = 2

    # Container naming and descriptor defaults
    delta_extension: str = "eopkg"
    default_language: str = "en"


# Module-level singleton, import as `from libeopkg.config import settings`
settings = EopkgSettings()
