"""
BodyScan FastAPI application.

Endpoints:
  POST /api/v1/validation      — is this one full-body person?
  POST /api/v1/measurements    — single-view calibrated measurements
  POST /api/v1/reconstruction  — three-view triangulation, mesh, 3D measurements
  GET  /health                 — health check
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import config
from app.api.routes import measurements, reconstruction, validation
from app.models.schemas import HealthResponse

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(name)-30s  %(levelname)-7s  %(message)s",
)

app = FastAPI(
    title=config.app_name,
    version=config.version,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Route registration ─────────────────────────────────────────────────

app.include_router(validation.router, prefix="/api/v1/validation", tags=["validation"])
app.include_router(measurements.router, prefix="/api/v1/measurements", tags=["measurements"])
app.include_router(reconstruction.router, prefix="/api/v1/reconstruction", tags=["reconstruction"])


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok", version=config.version)
