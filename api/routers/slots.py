"""
Slots API Endpoints.

Read-only projections of the advertising slot pool and per-slot bid history.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_facade
from api.errors import to_http_exception
from api.models import BidResponse, ErrorResponse, SlotResponse
from domain.slot import SlotStatus
from services.auction_facade import AuctionFacade

router = APIRouter()


@router.get(
    "/slots",
    response_model=List[SlotResponse],
    summary="List Slots",
    description="List slots by slot number, optionally filtered by status.",
)
def list_slots(
    status: Optional[str] = Query(
        None, description="Filter by status ('AVAILABLE', 'AUCTION_ACTIVE', 'OCCUPIED', 'RESERVED')"
    ),
    facade: AuctionFacade = Depends(get_facade),
):
    slot_status = None
    if status:
        try:
            slot_status = SlotStatus(status.upper())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail={"code": "InvalidStatus", "message": f"Invalid slot status '{status}'"},
            )

    try:
        slots = facade.list_slots(slot_status)
    except Exception as e:
        raise to_http_exception(e, "list slots")
    return [SlotResponse.from_domain(slot) for slot in slots]


@router.get("/slots/{slot_id}", response_model=SlotResponse, summary="Get Slot", responses={404: {"model": ErrorResponse}})
def get_slot(slot_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SlotResponse.from_domain(facade.get_slot(slot_id))
    except Exception as e:
        raise to_http_exception(e, "get slot")


@router.get(
    "/slots/{slot_id}/bids",
    response_model=List[BidResponse],
    summary="Slot Bid History",
    description="Every bid ever placed on the slot, newest first (withdrawn and outbid bids included).",
    responses={404: {"model": ErrorResponse}},
)
def get_bid_history(slot_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        bids = facade.bid_history(slot_id)
    except Exception as e:
        raise to_http_exception(e, "get bid history")
    return [BidResponse.from_domain(bid) for bid in bids]
