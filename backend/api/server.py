"""
api/server.py
-------------
FastAPI application entry point.

Run dev server:
    cd backend
    uvicorn api.server:app --reload --port 8000

Endpoints:
    GET  /v1/health
    POST /v1/itinerary/reschedule
    POST /v1/itinerary/order
    POST /v1/itinerary/legs
    POST /v1/itinerary/matrix
    POST /v1/itinerary/suggest
    POST /v1/trips/{trip_id}/versions
    GET  /v1/trips/{trip_id}/versions
    GET  /v1/trips/{trip_id}/versions/{version}
    POST /v1/trips/{trip_id}/adopt
    GET  /v1/trips/{trip_id}/adopted
    GET  /v1/trips/{trip_id}/history
    GET  /v1/trips/{trip_id}
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import config
from api.deps import close_services
from api.routes import health, itinerary, trips
from db.connection import close_pool

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    close_services()
    close_pool()


app = FastAPI(
    lifespan=lifespan,
    title="Group Itinerary API",
    version="1.0.0",
    description=(
        "Day-by-day group itineraries: travel-time estimates, time "
        "reconciliation, category ordering and versioned plan adoption."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
)

# Any origin during development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router,     prefix="/v1",           tags=["Health"])
app.include_router(itinerary.router,  prefix="/v1/itinerary", tags=["Itinerary"])
app.include_router(trips.router,      prefix="/v1/trips",     tags=["Trips"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=True)
