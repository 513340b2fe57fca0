#!/usr/bin/env python3
"""
friendswap relayer server
Cross-chain escrow swap relayer (Sepolia <-> Base Sepolia).

Endpoints:
  GET  /health                 - Health check + monitor states
  POST /swaps                  - Predict escrow addresses, register swap
  GET  /swaps                  - List swaps (?status=created|completed)
  POST /claim                  - Submit secret, start withdrawals
  GET  /swap-status/{hashlock} - Deployment status of both escrows
"""

import os
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from relayer import RelayerConfig, RelayerService, __version__
from routes.swaps import router as swaps_router

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=os.environ.get("RELAYER_LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
log = logging.getLogger(__name__)


# =============================================================================
# APP SETUP
# =============================================================================

def create_app(service: RelayerService = None) -> FastAPI:
    """
    Build the API around a relayer service.

    Args:
        service: Relayer to expose; built from the environment if None
    """
    if service is None:
        service = RelayerService(RelayerConfig.from_env())

    app = FastAPI(
        title="friendswap relayer",
        description="Cross-chain escrow swap relayer",
        version=__version__,
    )
    app.state.relayer = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health(request: Request):
        return request.app.state.relayer.health()

    app.include_router(swaps_router)

    @app.on_event("startup")
    async def startup_event():
        """Start chain monitors and settlement workers."""
        relayer = app.state.relayer
        relayer.start()
        log.info(f"Relayer API ready (read_only={relayer.read_only})")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stop monitors, drain settlement workers."""
        app.state.relayer.stop()

    return app


app = create_app()


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    port = app.state.relayer.config.port
    log.info(f"Starting friendswap relayer on port {port}")
    log.info(f"Docs: http://0.0.0.0:{port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=port)
