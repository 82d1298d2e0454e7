"""Bootstrap logic that prepares the runtime directory and token cache location."""

from __future__ import annotations

import logging
from pathlib import Path

from . import config as config_module
from .config import AppConfig, load_config

LOGGER = logging.getLogger(__name__)


class BootstrapError(RuntimeError):
    """Raised when initialization cannot be completed."""


class Bootstrapper:
    """High level object orchestrating initialization steps."""

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    @property
    def config(self) -> AppConfig:
        return self._config

    def initialize(self) -> None:
        """Run all bootstrap tasks."""

        LOGGER.debug("Starting bootstrap sequence")
        self._ensure_storage()
        self._check_identity_settings()
        LOGGER.info("Bootstrap completed successfully")

    def _ensure_storage(self) -> None:
        storage_root = self._config.storage_root
        if not config_module._ensure_writable_directory(storage_root):
            raise BootstrapError(
                f"Storage directory '{storage_root}' cannot be created or written to."
            )
        LOGGER.debug("Ensured directory exists: %s", storage_root)

        cache_file = self._config.token_cache_file
        if cache_file.is_dir():
            raise BootstrapError(f"Token cache location '{cache_file}' is a directory.")
        if cache_file.exists():
            LOGGER.debug("Found existing token cache at %s", cache_file)

    def _check_identity_settings(self) -> None:
        if not self._config.has_client_id:
            LOGGER.warning(
                "No identity client id configured; set %s or 'client_id' in "
                "config/default.json before signing in.",
                config_module.CLIENT_ID_ENV,
            )
        else:
            LOGGER.debug(
                "Identity provider authority %s with scopes %s",
                self._config.authority,
                ", ".join(self._config.scopes),
            )


def initialize_app(config_path: Path | None = None) -> AppConfig:
    """Convenience helper that loads configuration and runs initialization."""

    config = load_config(config_path=config_path)
    bootstrapper = Bootstrapper(config)
    bootstrapper.initialize()
    return config


__all__ = ["BootstrapError", "Bootstrapper", "initialize_app"]
