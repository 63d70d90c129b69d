import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from conversation_monitor.config import CORS_ALLOWED_ORIGINS, LOG_LEVEL
from conversation_monitor.conversations_api import router as conversations_router
from conversation_monitor.db_session import async_engine

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Conversation monitor starting")
    yield
    logger.info("Disposing database engine...")
    await async_engine.dispose()


# fastapi app
monitor_app = FastAPI(lifespan=lifespan)

# Configure CORS
monitor_app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
monitor_app.include_router(conversations_router)
