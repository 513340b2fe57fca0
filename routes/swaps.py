"""
Swap and claim endpoints.

Handlers reach the relayer through request.app.state.relayer, set by
server.create_app(). Handlers that talk to a chain are plain `def` so they
run in the threadpool.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from relayer.core import (
    ValidationError, NotFoundError, ForbiddenError, RPCError,
    ConfigurationError, QueueFullError, short_hex,
)

log = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# MODELS
# =============================================================================

class SwapCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chain_key: Optional[str] = Field(None, alias="chainKey", examples=["sepolia"])
    factory_address: Optional[str] = Field(None, alias="factoryAddress")
    execution_data: Optional[Dict[str, Any]] = Field(None, alias="executionData")


class ClaimRequest(BaseModel):
    # Optional so a missing field gets the relayer's 400, not a 422
    model_config = ConfigDict(populate_by_name=True)

    secret: Optional[str] = None
    hashlock: Optional[str] = None
    user_address: Optional[str] = Field(None, alias="userAddress")


def _relayer(request: Request):
    return request.app.state.relayer


def _error(status: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status, content={**extra, "error": message})


# =============================================================================
# SWAPS
# =============================================================================

@router.post("/swaps")
def create_swap(req: SwapCreateRequest, request: Request):
    """Predict both escrow addresses and register the swap."""
    try:
        record = _relayer(request).create_swap(req.chain_key, req.factory_address, req.execution_data)
    except ValidationError as e:
        return _error(400, str(e), ok=False)
    except RPCError as e:
        log.error(f"Address prediction failed: {e}")
        return _error(502, str(e), ok=False)
    except Exception as e:
        log.exception("Unexpected error creating swap")
        return _error(500, str(e), ok=False)

    return {"ok": True, "srcEscrow": record.src_escrow, "dstEscrow": record.dst_escrow}


@router.get("/swaps")
async def list_swaps(request: Request, status: Optional[str] = None):
    swaps = _relayer(request).list_swaps(status)
    log.info(f"Swaps list requested - returning {len(swaps)} swaps"
             f"{f' with status: {status}' if status else ''}")
    return [s.to_dict() for s in swaps]


@router.get("/swap-status/{hashlock}")
def swap_status(hashlock: str, request: Request):
    """Deployment flags, with an on-chain bytecode check for unseen sides."""
    try:
        report = _relayer(request).get_swap_status(hashlock)
    except NotFoundError:
        return _error(404, "Swap not found")
    except Exception:
        log.exception(f"Error checking swap status for {short_hex(hashlock)}")
        return _error(500, "Internal server error")

    return report.to_dict()


# =============================================================================
# CLAIMS
# =============================================================================

@router.post("/claim")
def claim(req: ClaimRequest, request: Request):
    """
    Accept the asker's secret and start settlement.

    Success only means the secret checked out; withdrawals happen in the
    background and show up in /swap-status and /swaps.
    """
    try:
        _relayer(request).submit_claim(req.secret, req.hashlock, req.user_address)
    except ValidationError as e:
        return _error(400, str(e))
    except NotFoundError:
        return _error(404, "Swap not found")
    except ForbiddenError as e:
        return _error(403, str(e))
    except (ConfigurationError, QueueFullError) as e:
        return _error(503, str(e))
    except Exception:
        log.exception("Error processing claim")
        return _error(500, "Internal server error")

    return {
        "success": True,
        "message": "Secret verified and withdrawals initiated. "
                   "Your tokens will be transferred shortly.",
    }
