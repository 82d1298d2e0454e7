"""Configuration loading utilities for the OneTune application."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".onetune_write_check"

DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_TENANT = "common"
DEFAULT_SCOPES: Tuple[str, ...] = ("Files.Read", "User.Read")
DEFAULT_GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_REQUEST_TIMEOUT = 15.0

CLIENT_ID_ENV = "ONETUNE_CLIENT_ID"
TENANT_ID_ENV = "ONETUNE_TENANT_ID"
REDIRECT_URI_ENV = "ONETUNE_REDIRECT_URI"


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins and the flag reports whether a fallback
    was used. When nothing can be prepared ``preferred`` is returned unchanged
    so the bootstrap step can report the problem.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


def _clean_optional(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings: storage location and identity provider registration."""

    storage_root: Path
    client_id: str = ""
    tenant: str = DEFAULT_TENANT
    redirect_uri: Optional[str] = None
    scopes: Tuple[str, ...] = DEFAULT_SCOPES
    graph_base_url: str = DEFAULT_GRAPH_BASE_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    interactive_fallback: bool = False

    @property
    def authority(self) -> str:
        return f"{DEFAULT_AUTHORITY_HOST}/{self.tenant or DEFAULT_TENANT}"

    @property
    def token_cache_file(self) -> Path:
        """Location of the serialized MSAL token cache."""

        return (self.storage_root / "token_cache.json").resolve()

    @property
    def has_client_id(self) -> bool:
        return bool(self.client_id.strip())

    @classmethod
    def from_mapping(
        cls,
        mapping: Mapping[str, Any],
        *,
        base_path: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        env = os.environ if environ is None else environ

        preferred_storage = (base_path / mapping.get("storage_root", "storage")).resolve()
        storage_fallback = Path.home() / ".onetune" / "storage"
        storage_root, _ = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        client_id = _clean_optional(env.get(CLIENT_ID_ENV)) or _clean_optional(
            mapping.get("client_id")
        )
        tenant = _clean_optional(env.get(TENANT_ID_ENV)) or _clean_optional(
            mapping.get("tenant")
        )
        redirect_uri = _clean_optional(env.get(REDIRECT_URI_ENV)) or _clean_optional(
            mapping.get("redirect_uri")
        )

        raw_scopes = mapping.get("scopes") or DEFAULT_SCOPES
        if isinstance(raw_scopes, str):
            raw_scopes = raw_scopes.split()
        scopes = tuple(str(scope).strip() for scope in raw_scopes if str(scope).strip())

        try:
            request_timeout = float(mapping.get("request_timeout", DEFAULT_REQUEST_TIMEOUT))
        except (TypeError, ValueError):
            LOGGER.warning(
                "Invalid request_timeout %r; using %s seconds.",
                mapping.get("request_timeout"),
                DEFAULT_REQUEST_TIMEOUT,
            )
            request_timeout = DEFAULT_REQUEST_TIMEOUT

        graph_base_url = (
            _clean_optional(mapping.get("graph_base_url")) or DEFAULT_GRAPH_BASE_URL
        ).rstrip("/")

        return cls(
            storage_root=storage_root,
            client_id=client_id or "",
            tenant=tenant or DEFAULT_TENANT,
            redirect_uri=redirect_uri,
            scopes=scopes or DEFAULT_SCOPES,
            graph_base_url=graph_base_url,
            request_timeout=request_timeout,
            interactive_fallback=bool(mapping.get("interactive_fallback", False)),
        )


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config: Dict[str, Any] = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["AppConfig", "load_config"]
