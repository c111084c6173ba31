from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from huechat.config import get_settings, setup_logging
from huechat.database import init_db, utcnow
from huechat.errors import ChatError, chat_error_handler, request_validation_handler
from huechat.messages import RetentionSweeper
from huechat.routers import auth_router, chat_router, friends_router
from huechat.typing_registry import TypingRegistry

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging()
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="huechat",
        description="Colour-identity group chat with polling sync",
        version="1.0.0",
        lifespan=lifespan
    )

    # Process-wide collaborators shared by every request
    app.state.clock = utcnow
    app.state.typing = TypingRegistry(settings.typing_idle_seconds, clock=lambda: app.state.clock())
    app.state.sweeper = RetentionSweeper(
        retention=timedelta(hours=settings.retention_hours),
        interval=timedelta(seconds=settings.retention_sweep_interval_seconds),
    )

    # In production, restrict origins to the front-end domain
    if settings.debug:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(auth_router.router)
    app.include_router(chat_router.router)
    app.include_router(friends_router.router)

    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/")
    async def root():
        """
        Health check endpoint.
        """
        return {
            "status": "running",
            "version": "1.0.0"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "huechat.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
