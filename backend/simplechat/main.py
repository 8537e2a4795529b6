import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from simplechat.api import chat, conversations, models, usage
from simplechat.core.config import settings
from simplechat.core.correlation import CORRELATION_HEADER, correlation_middleware_factory
from simplechat.core.database import engine, get_session, init_db
from simplechat.core.rate_limit import RateLimiter
from simplechat.services.chat import ChatService
from simplechat.services.llm import create_llm_provider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Configure logging based on debug setting
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s" if settings.debug
        else "%(levelname)-8s %(name)s: %(message)s",
    )

    init_db(engine)
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    app.state.chat_service = ChatService(
        engine=engine,
        llm=create_llm_provider(settings),
        upload_dir=settings.upload_dir,
        default_model=settings.default_model,
        title_preview_length=settings.title_preview_length,
    )
    app.state.send_rate_limiter = RateLimiter(settings.send_rate_limit, settings.send_rate_window_seconds)

    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[CORRELATION_HEADER],
)
app.middleware("http")(correlation_middleware_factory())

app.include_router(conversations.router, prefix="/api/conversations", tags=["conversations"])
app.include_router(chat.router, prefix="/api/conversations", tags=["chat"])
app.include_router(models.router, prefix="/api/models", tags=["models"])
app.include_router(usage.router, prefix="/api/usage", tags=["usage"])


@app.get("/api/health")
async def health(response: Response, session: Session = Depends(get_session)):
    try:
        session.connection().execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check failed: database unreachable: {e}")
        response.status_code = 503
        return {"status": "error", "app": settings.app_name, "database": "down"}
    return {"status": "ok", "app": settings.app_name, "database": "up"}


def run() -> None:
    import uvicorn

    uvicorn.run("simplechat.main:app", host=settings.host, port=settings.port, log_level="debug" if settings.debug else "info")


if __name__ == "__main__":
    run()
