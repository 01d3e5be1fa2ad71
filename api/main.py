"""
Ad Slot Auction API - Main Application.

FastAPI application with CORS enabled for frontend communication.

The default `memory` ledger backend starts empty: point AUCTION_SEED_FILE at a
JSON seed (see seed.example.json) to provision slots and companies, or use the
`supabase` backend for real data.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from settings import load_settings

logging.basicConfig(
    level=load_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Ad Slot Auction API",
    description="REST API for timed bidding on rotating advertising slots",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Configure CORS - Allow all origins for development
# TODO: Restrict origins once the operator dashboard has a fixed domain
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for demo
    allow_credentials=True,
    allow_methods=["*"],  # Allow all HTTP methods
    allow_headers=["*"],  # Allow all headers
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status, version and ledger backend.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "service": "ad-slot-auction-api",
        "ledger_backend": load_settings().ledger_backend,
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Ad Slot Auction API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import bids, notifications, sessions, slots, statistics

app.include_router(bids.router, prefix="/api/v1", tags=["Bids"])
app.include_router(sessions.router, prefix="/api/v1", tags=["Auction Sessions"])
app.include_router(slots.router, prefix="/api/v1", tags=["Slots"])
app.include_router(notifications.router, prefix="/api/v1", tags=["Notifications"])
app.include_router(statistics.router, prefix="/api/v1", tags=["Statistics"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
