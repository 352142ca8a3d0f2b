"""
HTTP surface of the tracker: Twitter sign-in, account settings, health.

Every route gets a `RequestContext` (session + signed-in user) from the
`get_request_context` dependency. Errors raised as `RouteError` are rendered as JSON
with the request id, which is also logged and returned in `X-Request-ID`.
"""
from __future__ import annotations

import logging
import os
import re
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import JSONResponse, RedirectResponse

from tracker.auth.config import AuthConfig, load_auth_config
from tracker.auth.deps import RequestContext, get_request_context, request_id_of
from tracker.auth.errors import FatalError, ForbiddenError, RouteError, UnauthorizedError
from tracker.auth.handshake import ProviderClient, Redirect, TwitterHandshake
from tracker.auth.models import Session
from tracker.auth.session import SessionError, SessionStore
from tracker.settings import SettingsService

logger = logging.getLogger(__name__)

LOGIN_PATH = "/connect/twitter"
SETTINGS_PATH = "/settings"
HOME_PATH = "/"

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


@dataclass
class AppDeps:
    """Collaborators shared by all requests, built once per app."""

    config: AuthConfig
    sessions: SessionStore
    users: Any
    settings: SettingsService
    handshake: Optional[TwitterHandshake]


def _new_request_id(request: Request) -> str:
    incoming = (request.headers.get("x-request-id") or "").strip()
    if incoming and _REQUEST_ID_RE.match(incoming):
        return incoming
    return uuid.uuid4().hex


def _redirect(url: str, *, status_code: int = 302) -> RedirectResponse:
    resp = RedirectResponse(url=url, status_code=status_code)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _persist(deps: AppDeps, session: Session, resp) -> None:  # type: ignore[no-untyped-def]
    try:
        value = deps.sessions.persist(session)
    except SessionError as e:
        raise FatalError("Error saving session", cause=e) from e
    resp.set_cookie(**deps.sessions.cookie_kwargs(value))


def _to_response(deps: AppDeps, result: Redirect) -> RedirectResponse:
    resp = _redirect(result.url)
    if result.session_cookie is not None:
        resp.set_cookie(**deps.sessions.cookie_kwargs(result.session_cookie))
    return resp


def _deps(request: Request) -> AppDeps:
    return request.app.state.deps


def create_app(
    *,
    auth_config: Optional[AuthConfig] = None,
    provider: Optional[ProviderClient] = None,
    users: Any = None,
    players: Any = None,
    osu: Any = None,
) -> FastAPI:
    """
    Build the web app.

    Collaborators not passed in are built from the environment: the Twitter client
    (only when consumer credentials are configured), Postgres-backed user and player
    stores, and the osu! API client. Nothing connects to the network here.
    """
    cfg = auth_config or load_auth_config()

    if users is None or players is None:
        from tracker.db.connection import make_connection_factory

        connect = make_connection_factory()
        if users is None:
            from tracker.db.users import UserStore

            users = UserStore(connect)
        if players is None:
            from tracker.db.players import PlayerStore

            players = PlayerStore(connect)

    if osu is None:
        from tracker.osu.client import OsuClient, load_osu_config

        osu = OsuClient.from_config(load_osu_config())

    if provider is None and cfg.twitter_enabled:
        from tracker.auth.twitter import TwitterClient

        provider = TwitterClient.from_config(cfg)

    sessions = SessionStore(cfg)
    handshake = None
    if provider is not None:
        handshake = TwitterHandshake(provider=provider, users=users, sessions=sessions, home_url=HOME_PATH)

    app = FastAPI(title="osu! stats tracker")
    app.state.deps = AppDeps(
        config=cfg,
        sessions=sessions,
        users=users,
        settings=SettingsService(users=users, players=players, osu=osu),
        handshake=handshake,
    )
    _register(app)
    return app


def _register(app: FastAPI) -> None:
    @app.on_event("startup")
    def _startup_maybe_migrate_db() -> None:
        """Apply DB migrations when DB_AUTO_MIGRATE=1. Never prevents startup."""
        from tracker.db.migrate import migrate_on_startup

        migrate_on_startup()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Assign a request id and log every request."""
        start_time = time.time()
        request.state.request_id = _new_request_id(request)
        logger.debug("[%s] %s %s", request.state.request_id, request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception(
                "[%s] %s %s - ERROR after %.3fs: %s",
                request.state.request_id,
                request.method,
                request.url.path,
                process_time,
                str(e),
            )
            raise
        response.headers["X-Request-ID"] = request.state.request_id
        process_time = time.time() - start_time
        logger.debug(
            "[%s] %s %s - %d (%.3fs)",
            request.state.request_id,
            request.method,
            request.url.path,
            response.status_code,
            process_time,
        )
        return response

    @app.exception_handler(RouteError)
    async def _route_error(request: Request, exc: RouteError) -> JSONResponse:
        rid = request_id_of(request)
        if exc.status_code >= 500:
            logger.error(
                "[%s] %s %s - %s: %s",
                rid,
                request.method,
                request.url.path,
                exc.message,
                exc.cause,
                exc_info=exc.cause,
            )
        else:
            logger.warning("[%s] %s %s - %s", rid, request.method, request.url.path, exc.message)
        resp = JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "detail": exc.message, "requestId": rid},
        )
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["X-Request-ID"] = rid
        return resp

    @app.get("/healthz")
    def healthz() -> Dict[str, Any]:
        return {"ok": True}

    @app.get(HOME_PATH)
    def home(ctx: RequestContext = Depends(get_request_context)) -> Dict[str, Any]:
        return {"ok": True, "isAuthenticated": ctx.is_authenticated, "user": _user_summary(ctx)}

    @app.get(LOGIN_PATH)
    def connect_twitter(request: Request, ctx: RequestContext = Depends(get_request_context)) -> RedirectResponse:
        """Start Twitter sign-in (no-op for signed-in users)."""
        deps = _deps(request)
        if deps.handshake is None:
            raise ForbiddenError("Twitter sign-in is not enabled")
        result = deps.handshake.initiate_login(ctx.session, deps.config.callback_url)
        return _to_response(deps, result)

    @app.get(LOGIN_PATH + "/callback")
    def connect_twitter_callback(
        request: Request, ctx: RequestContext = Depends(get_request_context)
    ) -> RedirectResponse:
        """Twitter redirects here with `oauth_token` and `oauth_verifier`."""
        deps = _deps(request)
        if deps.handshake is None:
            raise ForbiddenError("Twitter sign-in is not enabled")
        result = deps.handshake.complete_login(ctx.session, request.query_params)
        return _to_response(deps, result)

    @app.post("/logout")
    def logout(request: Request) -> RedirectResponse:
        resp = _redirect(HOME_PATH)
        resp.set_cookie(**_deps(request).sessions.clear_cookie_kwargs())
        return resp

    @app.get("/api/me")
    def me(ctx: RequestContext = Depends(get_request_context)) -> Dict[str, Any]:
        if not ctx.is_authenticated:
            raise UnauthorizedError("Unauthorized")
        return {"ok": True, "user": _user_summary(ctx)}

    @app.get(SETTINGS_PATH, response_model=None)
    def settings_page(request: Request, ctx: RequestContext = Depends(get_request_context)):
        # Privileged page; send anonymous users to sign in.
        if not ctx.is_authenticated or ctx.user is None:
            return _redirect(LOGIN_PATH)
        deps = _deps(request)
        body = deps.settings.view(ctx.session, ctx.user)
        resp = JSONResponse(content=body)
        resp.headers["Cache-Control"] = "no-store"
        _persist(deps, ctx.session, resp)
        return resp

    @app.post(SETTINGS_PATH + "/tweets/enable")
    def enable_tweet_posting(request: Request, ctx: RequestContext = Depends(get_request_context)) -> RedirectResponse:
        if not ctx.is_authenticated or ctx.user is None:
            return _redirect(LOGIN_PATH)
        _deps(request).settings.set_tweet_posting(ctx.user, True)
        return _redirect(SETTINGS_PATH)

    @app.post(SETTINGS_PATH + "/tweets/disable")
    def disable_tweet_posting(request: Request, ctx: RequestContext = Depends(get_request_context)) -> RedirectResponse:
        if not ctx.is_authenticated or ctx.user is None:
            return _redirect(LOGIN_PATH)
        _deps(request).settings.set_tweet_posting(ctx.user, False)
        return _redirect(SETTINGS_PATH)

    @app.post(SETTINGS_PATH)
    def update_settings(
        request: Request,
        osu_username: str = Form(""),
        game_mode: str = Form(""),
        ctx: RequestContext = Depends(get_request_context),
    ) -> RedirectResponse:
        if not ctx.is_authenticated or ctx.user is None:
            return _redirect(LOGIN_PATH)
        deps = _deps(request)
        resp = _redirect(SETTINGS_PATH)
        if not ctx.user.tweets_enabled:
            return resp
        deps.settings.update_osu_account(
            ctx.session, ctx.user, {"osu_username": osu_username, "game_mode": game_mode}
        )
        _persist(deps, ctx.session, resp)
        return resp


def _user_summary(ctx: RequestContext) -> Optional[Dict[str, Any]]:
    user = ctx.user
    if user is None or not ctx.is_authenticated:
        return None
    return {
        "id": user.id,
        "screenName": user.screen_name,
        "name": user.display_name,
        "picture": user.profile_image_url,
    }


app = create_app()


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting tracker web server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
