import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import events  # noqa: F401  registers the ORM lifecycle hooks
from app.cache import cache
from app.config import settings
from app.exceptions import install_exception_handlers
from app.logging_config import configure_logging
from app.middleware import RequestLogMiddleware
from app.routers import articles, statistics, tags, tidings, users

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting blog API (env=%s)", settings.APP_ENV)
    await cache.connect()
    yield
    await cache.disconnect()


app = FastAPI(
    title="Blog CMS API",
    description="Articles, tidings, tags, comments and change history with tag-based caching",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(RequestLogMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_exception_handlers(app)

app.include_router(articles.router)
app.include_router(tidings.router)
app.include_router(tags.router)
app.include_router(users.router)
app.include_router(statistics.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
