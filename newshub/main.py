from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime, timezone
import uvicorn
from contextlib import asynccontextmanager
import logging

from .api.routes import router as api_router
from .api.user_routes import router as user_router
from .core.config import settings
from .core.database import init_db
from .models.schemas import HealthResponse
from .services.llm_service import llm_service
from .services.news_aggregator import news_aggregator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic for the FastAPI app."""
    logger.info("🚀 Starting up the application...")
    await init_db()
    try:
        yield
    finally:
        # Close the shared aiohttp sessions to avoid unclosed client warnings.
        for name, service in (("LLM service", llm_service), ("news aggregator", news_aggregator)):
            try:
                await service.close()
            except Exception as e:
                logger.warning(f"Error closing {name} session: {e}")
        logger.info("🛑 Shutting down the application...")


app = FastAPI(
    title="NewsHub - News Aggregator",
    description="RSS and Naver news aggregation with LLM summaries, bookmarks and email digests",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(
        status="ok",
        message="Service is healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        llm_available=llm_service.available,
        naver_available=settings.has_naver_credentials,
    )


app.include_router(api_router, prefix="/api")
app.include_router(user_router, prefix="/api")

# Dev entry point
if __name__ == "__main__":
    uvicorn.run(
        "newshub.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.is_development,
    )
