"""FastAPI application powering the OneTune player page."""

from __future__ import annotations

import asyncio
import contextvars
import functools
import json
import logging
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi import status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import BaseModel, Field
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.auth import AuthenticationRequiredError, DriveAuthenticator
from ..services.events import emit_structured_event
from ..services.explorer import DriveExplorer, NotAPlaylistError, StaleResultError
from ..services.graph import GraphAPIError, GraphClient
from ..services.player import PlaybackController
from ..services.playlist import Playlist

T = TypeVar("T")

_TEMPLATE_PATH = Path(__file__).parent / "templates" / "index.html"
_ROOT_PATH_PLACEHOLDER = "__ONETUNE_ROOT_PATH__"


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "onetune_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "onetune_actor",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _format_actor_label(role: str, detail: Optional[str] = None) -> str:
    base = role.strip() if role else "actor"
    if detail is None:
        return base
    suffix = str(detail).strip()
    return f"{base}:{suffix}" if suffix else base


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = str(actor)
    return context


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        method = scope.get("method")
        actor_hint = _format_actor_label("request", method.upper() if isinstance(method, str) else None)
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(actor_hint)

        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra)
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("onetune.events"), {})


def _log_event(message: str, *, level: int = logging.INFO, **context: Any) -> None:
    emit_structured_event(
        "APP_EVENT",
        message,
        context=context,
        correlation=_collect_correlation_context(),
        level=level,
        logger=EVENT_LOGGER,
    )


class ForwardedRootPathMiddleware:
    """Apply proxy-provided root path information to incoming requests."""

    def __init__(self, app: ASGIApp) -> None:
        self._app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self._app(scope, receive, send)
            return

        prefix = _normalize_forwarded_prefix(_headers_to_dict(scope).get("x-forwarded-prefix"))
        if prefix is None:
            await self._app(scope, receive, send)
            return

        adjusted_scope = dict(scope)
        adjusted_scope["root_path"] = prefix
        adjusted_scope["path"] = _trim_path(scope.get("path", "/"), prefix)

        raw_path = scope.get("raw_path")
        if isinstance(raw_path, (bytes, bytearray)):
            trimmed = _trim_path(raw_path.decode("latin-1"), prefix)
            adjusted_scope["raw_path"] = trimmed.encode("latin-1")

        await self._app(adjusted_scope, receive, send)


def _normalize_root_path(value: Optional[str]) -> str:
    if value is None:
        return ""
    normalized = value.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


def _headers_to_dict(scope: Scope) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for key, value in scope.get("headers", []):
        lower_key = key.decode("latin-1").lower()
        if lower_key in headers:
            continue
        headers[lower_key] = value.decode("latin-1")
    return headers


def _normalize_forwarded_prefix(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    candidate = value.split(",", 1)[0].strip()
    normalized = _normalize_root_path(candidate)
    return normalized or None


def _trim_path(path: Any, prefix: str) -> str:
    working = str(path) or "/"
    if not working.startswith("/"):
        working = f"/{working}"
    if prefix and working.startswith(prefix):
        working = working[len(prefix) :] or "/"
    if not working.startswith("/"):
        working = f"/{working}"
    return working


class OpenPlaylistPayload(BaseModel):
    item_id: str = Field(..., min_length=1)


class TrackEndedPayload(BaseModel):
    generation: Optional[int] = None


async def _run_blocking(func: Callable[..., T], *args: Any) -> T:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


def create_app(
    config: AppConfig,
    *,
    authenticator: Optional[DriveAuthenticator] = None,
    graph_client: Optional[GraphClient] = None,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    normalized_root = _normalize_root_path(root_path)
    app = FastAPI(
        title="OneTune",
        description="Play M3U playlists stored in OneDrive",
        root_path=normalized_root,
    )
    app.state.server = None
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ForwardedRootPathMiddleware)

    if authenticator is None:
        authenticator = DriveAuthenticator(config)
    if graph_client is None:
        graph_client = GraphClient(config, authenticator.acquire_token)

    explorer = DriveExplorer(graph_client)
    player = PlaybackController(
        graph_client.get_download_url,
        correlation=_collect_correlation_context,
    )
    app.state.authenticator = authenticator
    app.state.graph_client = graph_client
    app.state.explorer = explorer
    app.state.player = player
    app.state.playlist = None

    index_html = _TEMPLATE_PATH.read_text(encoding="utf-8")

    def _render_index_html(request: Request) -> str:
        resolved = _normalize_root_path(request.scope.get("root_path")) or normalized_root
        return index_html.replace(_ROOT_PATH_PLACEHOLDER, json.dumps(resolved)[1:-1])

    def _login_url(request: Request) -> str:
        return str(request.url_for("auth_login"))

    def _http_error(request: Request, error: Exception) -> HTTPException:
        if isinstance(error, AuthenticationRequiredError):
            _log_event("Sign-in required", level=logging.WARNING, reason=str(error))
            return HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"message": str(error), "login_url": _login_url(request)},
            )
        if isinstance(error, StaleResultError):
            return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
        if isinstance(error, NotAPlaylistError):
            return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
        LOGGER.error("Drive request failed: %s", error)
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"message": str(error), "view": "explorer"},
        )

    def _player_payload() -> Dict[str, Any]:
        playlist: Optional[Playlist] = app.state.playlist
        return {
            "player": player.state.to_dict(),
            "playlist": playlist.to_dict() if playlist is not None else None,
        }

    _handled_errors: Tuple[type, ...] = (
        AuthenticationRequiredError,
        GraphAPIError,
        StaleResultError,
        NotAPlaylistError,
    )

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request) -> HTMLResponse:
        return HTMLResponse(_render_index_html(request))

    @app.get("/auth/login", name="auth_login")
    async def auth_login(request: Request) -> RedirectResponse:
        redirect_uri = config.redirect_uri or str(request.url_for("auth_callback"))
        try:
            auth_uri = await _run_blocking(authenticator.begin_sign_in, redirect_uri)
        except AuthenticationRequiredError as error:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error)) from error
        return RedirectResponse(auth_uri, status_code=status.HTTP_302_FOUND)

    @app.get("/auth/callback", name="auth_callback")
    async def auth_callback(request: Request) -> RedirectResponse:
        query = dict(request.query_params)
        if "error" in query:
            _log_event("Sign-in rejected by provider", level=logging.WARNING, error=query["error"])
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=query.get("error_description") or query["error"],
            )
        try:
            await _run_blocking(authenticator.complete_sign_in, query)
        except AuthenticationRequiredError as error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error
        explorer.reset()
        return RedirectResponse(str(request.url_for("index")), status_code=status.HTTP_303_SEE_OTHER)

    @app.post("/auth/logout")
    async def auth_logout(request: Request) -> Dict[str, Any]:
        logout_url = await _run_blocking(authenticator.sign_out, str(request.url_for("index")))
        explorer.reset()
        await player.reset()
        app.state.playlist = None
        return {"status": "signed_out", "logout_url": logout_url}

    @app.get("/api/session")
    async def session(request: Request) -> Dict[str, Any]:
        account = await _run_blocking(authenticator.current_account)
        return {
            "authenticated": account is not None,
            "account": account.get("username") if account else None,
            "configured": config.has_client_id,
            "login_url": _login_url(request),
        }

    @app.get("/api/drive/children")
    async def list_children(
        request: Request,
        item_id: Optional[str] = Query(None),
    ) -> Dict[str, Any]:
        _log_event("Listing folder", item_id=item_id or "root")
        try:
            view = await explorer.navigate(item_id or None)
        except _handled_errors as error:
            raise _http_error(request, error) from error
        return view.to_dict()

    @app.post("/api/playlists/open")
    async def open_playlist(request: Request, payload: OpenPlaylistPayload) -> Dict[str, Any]:
        _log_event("Opening playlist", item_id=payload.item_id)
        try:
            playlist = await explorer.open_playlist(payload.item_id)
            app.state.playlist = playlist
            await player.load(playlist.entries)
        except _handled_errors as error:
            raise _http_error(request, error) from error
        return _player_payload()

    @app.get("/api/player")
    async def player_state() -> Dict[str, Any]:
        return _player_payload()

    async def _player_action(request: Request, action: Callable[[], Any]) -> Dict[str, Any]:
        try:
            await action()
        except _handled_errors as error:
            raise _http_error(request, error) from error
        return _player_payload()

    @app.post("/api/player/next")
    async def player_next(request: Request) -> Dict[str, Any]:
        return await _player_action(request, player.next)

    @app.post("/api/player/previous")
    async def player_previous(request: Request) -> Dict[str, Any]:
        return await _player_action(request, player.previous)

    @app.post("/api/player/toggle")
    async def player_toggle(request: Request) -> Dict[str, Any]:
        return await _player_action(request, player.toggle)

    @app.post("/api/player/retry")
    async def player_retry(request: Request) -> Dict[str, Any]:
        return await _player_action(request, player.retry)

    @app.post("/api/player/ended")
    async def player_ended(request: Request, payload: TrackEndedPayload) -> Dict[str, Any]:
        return await _player_action(request, functools.partial(player.ended, payload.generation))

    @app.post("/api/player/stop")
    async def player_stop() -> Dict[str, Any]:
        await player.reset()
        app.state.playlist = None
        return _player_payload()

    @app.get("/{requested_path:path}", response_class=HTMLResponse)
    async def spa_fallback(request: Request, requested_path: str) -> HTMLResponse:
        """Serve the page for non-API paths when the app lives under a prefix."""

        normalized = requested_path.lstrip("/")
        if normalized in {"api", "auth"} or normalized.startswith(("api/", "auth/")):
            raise HTTPException(status_code=404, detail="Not Found")
        return HTMLResponse(_render_index_html(request))

    return app


__all__ = ["create_app"]
