import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.shared.core.config import settings
from app.shared.core.logging import setup_logging
from app.shared.middleware.correlation import CorrelationIdMiddleware
from app.modules.whatsapp_inbox.api import router as whatsapp_inbox_router
from app.modules.whatsapp_inbox.services.status_simulator import status_simulator

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} API starting")
    yield
    # Pending simulated transitions are in-memory only
    await status_simulator.shutdown()
    logger.info(f"{settings.PROJECT_NAME} API stopped")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.CORS_ORIGIN.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CorrelationIdMiddleware)

# Webhook, messages and contacts
app.include_router(whatsapp_inbox_router, prefix=settings.API_PREFIX)


@app.get("/health")
def health():
    return {"status": "OK", "service": settings.PROJECT_NAME}


@app.get("/")
def root():
    return {"message": f"{settings.PROJECT_NAME} API is running"}
