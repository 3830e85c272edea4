from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
from sqlmodel import Session, text

from app.core.config import settings
from app.api.api_router import api_router
from app.core.db import engine, init_db
from app.core.tracing import setup_tracing
from app.integrations.storage_service import get_object_store
from app.services.temp_store import get_temp_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_tracing(settings.APP_NAME.lower())
    init_db()

    yield

    # Shutdown


app = FastAPI(
    title=settings.APP_NAME,
    lifespan=lifespan,
)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALL_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/healthz")
async def health_check():
    """Health check endpoint that verifies connectivity to all external services."""
    health_status = {
        "status": "healthy",
        "services": {
            "database": "unknown",
            "object_storage": "unknown",
            "temp_storage": "unknown",
        }
    }

    try:
        with Session(engine) as session:
            session.exec(text("SELECT 1"))
            health_status["services"]["database"] = "healthy"
    except Exception as e:
        health_status["services"]["database"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    try:
        if await get_object_store().ping():
            health_status["services"]["object_storage"] = "healthy"
        else:
            health_status["services"]["object_storage"] = "unhealthy: bucket unavailable"
            health_status["status"] = "degraded"
    except Exception as e:
        health_status["services"]["object_storage"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    try:
        await get_temp_store().ping()
        health_status["services"]["temp_storage"] = f"healthy ({settings.TEMP_STORAGE_BACKEND})"
    except Exception as e:
        health_status["services"]["temp_storage"] = f"unhealthy: {str(e)}"
        health_status["status"] = "degraded"

    return health_status
