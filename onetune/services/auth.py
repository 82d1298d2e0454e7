"""Microsoft identity platform sign-in backed by MSAL."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlencode

import msal

from ..config import AppConfig
from .events import emit_auth_event

LOGGER = logging.getLogger(__name__)

# Sign-in attempts kept waiting for their callback; older ones are dropped.
MAX_PENDING_SIGN_INS = 3


class AuthenticationRequiredError(RuntimeError):
    """Raised when a token cannot be obtained without the user signing in again."""


class AuthConfigurationError(AuthenticationRequiredError):
    """Raised when the identity provider registration is incomplete."""


class DriveAuthenticator:
    """Acquire Graph access tokens for the single signed-in user.

    Tokens come from the persisted MSAL cache. When silent acquisition fails
    the interactive flow is attempted once if ``config.interactive_fallback``
    is enabled; otherwise the caller must send the user through
    :meth:`begin_sign_in`.
    """

    def __init__(self, config: AppConfig, *, application: Any = None) -> None:
        self._config = config
        self._cache = msal.SerializableTokenCache()
        self._application = application
        self._pending_flows: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._flow_lock = threading.Lock()
        self._cache_lock = threading.Lock()
        self._load_cache()

    @property
    def scopes(self) -> List[str]:
        return list(self._config.scopes)

    def _load_cache(self) -> None:
        cache_file = self._config.token_cache_file
        if not cache_file.exists():
            return
        try:
            self._cache.deserialize(cache_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as error:
            LOGGER.warning("Ignoring unreadable token cache %s: %s", cache_file, error)

    def _persist_cache(self) -> None:
        with self._cache_lock:
            if not self._cache.has_state_changed:
                return
            cache_file = self._config.token_cache_file
            cache_file.parent.mkdir(parents=True, exist_ok=True)
            staging = cache_file.with_suffix(".tmp")
            staging.write_text(self._cache.serialize(), encoding="utf-8")
            staging.replace(cache_file)
        LOGGER.debug("Token cache written to %s", cache_file)

    def _app(self) -> Any:
        with self._lock:
            if self._application is None:
                if not self._config.has_client_id:
                    raise AuthConfigurationError(
                        "No client id configured for the identity provider"
                    )
                self._application = msal.PublicClientApplication(
                    self._config.client_id,
                    authority=self._config.authority,
                    token_cache=self._cache,
                )
            return self._application

    def current_account(self) -> Optional[Dict[str, Any]]:
        try:
            accounts = self._app().get_accounts()
        except AuthConfigurationError:
            return None
        return accounts[0] if accounts else None

    def is_authenticated(self) -> bool:
        return self.current_account() is not None

    def begin_sign_in(self, redirect_uri: str) -> str:
        """Start the authorization-code flow and return the provider sign-in URL."""

        flow = self._app().initiate_auth_code_flow(
            self.scopes,
            redirect_uri=redirect_uri,
            prompt="select_account",
        )
        if "auth_uri" not in flow:
            raise AuthenticationRequiredError(
                flow.get("error_description") or "Could not start sign-in"
            )
        with self._flow_lock:
            self._pending_flows[flow["state"]] = flow
            while len(self._pending_flows) > MAX_PENDING_SIGN_INS:
                oldest = next(iter(self._pending_flows))
                del self._pending_flows[oldest]
                LOGGER.debug("Dropped abandoned sign-in attempt %s", oldest)
        emit_auth_event("Sign-in started", context={"redirect_uri": redirect_uri})
        return flow["auth_uri"]

    def complete_sign_in(self, query: Mapping[str, str]) -> Dict[str, Any]:
        """Redeem the provider callback parameters for tokens."""

        state = query.get("state")
        with self._flow_lock:
            flow = self._pending_flows.pop(state, None) if state else None
        if flow is None:
            raise AuthenticationRequiredError("Unknown or expired sign-in attempt")
        try:
            result = self._app().acquire_token_by_auth_code_flow(flow, dict(query))
        except ValueError as error:
            raise AuthenticationRequiredError(f"Sign-in callback rejected: {error}") from error
        if "access_token" not in result:
            raise AuthenticationRequiredError(
                result.get("error_description") or result.get("error") or "Sign-in failed"
            )
        self._persist_cache()
        account = (result.get("id_token_claims") or {}).get("preferred_username")
        emit_auth_event("Signed in", context={"account": account})
        return result

    def acquire_token(self) -> str:
        """Return an access token, trying the silent flow before the interactive one."""

        application = self._app()
        accounts = application.get_accounts()
        result: Optional[Dict[str, Any]] = None
        if accounts:
            result = application.acquire_token_silent(self.scopes, account=accounts[0])
        if result and "access_token" in result:
            self._persist_cache()
            return result["access_token"]

        reason = (result or {}).get("error_description") or "no cached token"
        LOGGER.info("Silent token acquisition failed: %s", reason)
        if not self._config.interactive_fallback:
            raise AuthenticationRequiredError("Sign-in required")

        emit_auth_event("Falling back to interactive sign-in", context={"reason": reason})
        result = application.acquire_token_interactive(self.scopes, prompt="select_account")
        if not result or "access_token" not in result:
            raise AuthenticationRequiredError(
                (result or {}).get("error_description") or "Interactive sign-in failed"
            )
        self._persist_cache()
        return result["access_token"]

    def sign_out(self, post_logout_redirect_uri: Optional[str] = None) -> str:
        """Forget every cached account and return the provider logout URL."""

        try:
            application = self._app()
        except AuthConfigurationError:
            application = None
        if application is not None:
            for account in application.get_accounts():
                application.remove_account(account)
        with self._flow_lock:
            self._pending_flows.clear()
        self._persist_cache()
        emit_auth_event("Signed out")

        logout_url = f"{self._config.authority}/oauth2/v2.0/logout"
        if post_logout_redirect_uri:
            logout_url += "?" + urlencode({"post_logout_redirect_uri": post_logout_redirect_uri})
        return logout_url


__all__ = ["AuthConfigurationError", "AuthenticationRequiredError", "DriveAuthenticator"]
