# marketplace/app.py
import logging
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from marketplace import settings
from marketplace.ad_space_service import AdSpaceService
from marketplace.auth import TokenSigner
from marketplace.available_cache import build_cache
from marketplace.chat_service import ChatService
from marketplace.db_connection import DbConnection
from marketplace.errors import MarketplaceError
from marketplace.file_store import MediaService, build_file_store
from marketplace.mailer import Mailer
from marketplace.middleware import RateLimitMiddleware
from marketplace.realtime import ChatHub
from marketplace.request_service import RequestService
from marketplace.user_service import UserService
from marketplace import api_ad_spaces, api_auth, api_chat, api_media, api_properties, api_requests

logger = logging.getLogger("adspace_backend")


def create_app(
    session_factory: Callable | None = None,
    database_url: str | None = None,
    cache=None,
    mailer: Mailer | None = None,
    file_store=None,
    google_verifier: Callable[[str], dict] | None = None,
    jwt_secret: str = settings.JWT_SECRET,
    rate_limit_max: int = settings.RATE_LIMIT_MAX,
    rate_limit_window: int = settings.RATE_LIMIT_WINDOW_SECONDS,
    frontend_url: str = settings.FRONTEND_URL,
) -> FastAPI:
    connection = None
    if session_factory is None:
        connection = DbConnection(database_url)
        connection.create_all()
        session_factory = connection.build_db_session_factory()

    cache = cache if cache is not None else build_cache(settings.REDIS_URL)
    mailer = mailer or Mailer()
    if file_store is None:
        file_store = build_file_store(session_factory, connection, settings.GCS_BUCKET_NAME)

    app = FastAPI(title="AdSpace Marketplace")

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RateLimitMiddleware, limit=rate_limit_max, window_seconds=rate_limit_window)

    tokens = TokenSigner(jwt_secret, settings.JWT_ALGORITHM, settings.JWT_EXPIRES_MINUTES)
    media = MediaService(file_store)
    ad_spaces = AdSpaceService(session_factory, media, cache)

    app.state.session_factory = session_factory
    app.state.cookie_secure = settings.COOKIE_SECURE
    app.state.tokens = tokens
    app.state.cache = cache
    app.state.media = media
    app.state.hub = ChatHub()
    app.state.users = UserService(
        session_factory, tokens, mailer, frontend_url=frontend_url, google_verifier=google_verifier
    )
    app.state.ad_spaces = ad_spaces
    app.state.requests = RequestService(session_factory, mailer, on_listing_change=ad_spaces.invalidate_available)
    app.state.chat = ChatService(session_factory, mailer, frontend_url=frontend_url)

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"message": "Something went wrong!"})

    for module in (api_auth, api_ad_spaces, api_properties, api_requests, api_chat, api_media):
        app.include_router(module.router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
