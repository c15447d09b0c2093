from contextlib import asynccontextmanager
from typing import (
    Any,
    Dict,
)
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from vitalis.config.logging_config import configure_logging
from vitalis.api.v1.medical import router as medical_router

APP_NAME = "Vitalis Medical Report Analyzer"
APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging once before the first request."""
    configure_logging()
    yield

app = FastAPI(
    title=APP_NAME,
    version=APP_VERSION,
    description="Extracts lab values, medications and findings from medical reports and scores them",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(medical_router, prefix="/api/v1/medical")


@app.get("/")
async def root() -> Dict[str, Any]:
    """Service name, version and status."""
    return {"name": APP_NAME, "version": APP_VERSION, "status": "healthy"}


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    return {"status": "healthy"}
