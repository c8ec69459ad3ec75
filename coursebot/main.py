"""
FastAPI main application for the course assistant semantic engine
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coursebot.core.config import settings
from coursebot.core.logging import setup_logging
from coursebot.middleware.logging_middleware import RequestLoggingMiddleware
from coursebot.routers import semantic
from coursebot.services.conversation_context import get_conversation_context_store
from coursebot.services.semantic_normalizer import get_semantic_normalizer

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(f"Starting {settings.app_name} v{settings.version}...")

    logger.info("=" * 60)
    logger.info("CONFIGURATION CHECK")
    logger.info("=" * 60)

    if settings.openai_api_key:
        key = settings.openai_api_key
        key_preview = f"{key[:7]}...{key[-4:]}" if len(key) > 11 else "***"
        logger.info(f"✅ OPENAI_API_KEY is set: {key_preview}")
    else:
        logger.error("❌ OPENAI_API_KEY is NOT set - AI analysis requests will fail with 503")

    store = get_conversation_context_store()
    health = await store.health_check()
    if health["status"] == "healthy":
        logger.info(f"✅ Conversation store reachable ({health['backend']})")
    else:
        logger.warning(f"⚠️ Conversation store unreachable ({health['backend']}) - running without memory")

    normalizer = get_semantic_normalizer()
    logger.info(f"✅ Normalizer ready with {normalizer.cache.precomputed_size} precomputed mappings")
    logger.info("=" * 60)

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await store.kv_store.close()
    logger.info("Application stopped")


app = FastAPI(
    title=settings.app_name,
    description="Semantic decision and conversation state engine for a course scheduling assistant",
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers"""
    store_health = await get_conversation_context_store().health_check()
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.version,
        "conversation_store": store_health["status"],
    }


app.include_router(semantic.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "coursebot.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_config=None,
        access_log=False,
    )
