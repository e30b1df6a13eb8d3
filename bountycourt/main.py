from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bountycourt.api.middleware import RequestLogMiddleware
from bountycourt.api.v1.router import v1_router
from bountycourt.common.logging import setup_logging
from bountycourt.config import settings
from bountycourt.integrations.notifier import NotificationClient
from bountycourt.integrations.settlement import SettlementClient


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield


app = FastAPI(
    title="BountyCourt API",
    description="Dispute resolution and escrow settlement for cancelled bounties",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
origins = settings.ALLOWED_ORIGINS.split(",") if settings.ALLOWED_ORIGINS != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLogMiddleware)

app.include_router(v1_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    integrations = {
        client.name: await client.health_check()
        for client in (SettlementClient(), NotificationClient())
    }
    return {
        "status": "healthy" if all(integrations.values()) else "degraded",
        "service": "bountycourt",
        "version": "1.0.0",
        "env": settings.APP_ENV,
        "integrations": integrations,
    }
