"""
Bids API Endpoints.

Endpoints for placing, withdrawing and querying bids, plus operator overrides.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_facade
from api.errors import rejection_exception, to_http_exception
from api.models import BidRejectionResponse, BidResponse, ErrorResponse, PlaceBidResponse
from api.models import PlaceBidRequest as APIPlaceBidRequest
from domain.bid import BidStatus
from services.auction_facade import AuctionFacade
from services.bid_ledger import PlaceBidRequest

router = APIRouter()


@router.post(
    "/bids",
    response_model=PlaceBidResponse,
    status_code=201,
    summary="Place Bid",
    description="Place a bid on a slot. Rejected bids return 400 with a machine-readable reason.",
    responses={400: {"model": BidRejectionResponse}, 404: {"model": ErrorResponse}},
)
def place_bid(request: APIPlaceBidRequest, facade: AuctionFacade = Depends(get_facade)):
    """
    Place a bid.

    **Validation order (first failure wins):**
    1. `SlotNotBiddable` - slot is OCCUPIED or RESERVED
    2. `NoActiveSession` - slot belongs to a session that is not ACTIVE
    3. `BidderIneligible` / `ExceedsMaxBid` - company checks
    4. `BelowReserve` - amount under the reserve price
    5. `BidTooLow` - amount under the current bid plus increment

    `BelowReserve` and `BidTooLow` include `minimum_amount`.

    **Rejection response:**
    ```json
    {"detail": {"reason": "BidTooLow", "message": "Bid must be at least 1100 (current bid 1000)", "minimum_amount": "1100"}}
    ```
    """
    try:
        result = facade.place_bid(
            PlaceBidRequest(
                slot_id=request.slot_id,
                company_id=request.company_id,
                user_id=request.user_id,
                amount=request.amount,
                bidder_info=request.bidder_info,
            )
        )
    except Exception as e:
        raise to_http_exception(e, "place bid")

    if not result.success or result.bid is None:
        raise rejection_exception(result)

    return PlaceBidResponse(
        bid=BidResponse.from_domain(result.bid),
        previous_bid_id=result.previous_bid.bid_id if result.previous_bid else None,
        session_extended=result.extended,
        session_end_time=result.session.end_time if result.session else None,
        message=result.message,
    )


@router.get(
    "/bids",
    response_model=List[BidResponse],
    summary="Query Bids",
    description="List bids (newest first) filtered by slot, status, company or session.",
)
def list_bids(
    slot_id: Optional[UUID] = Query(None, description="Filter by slot"),
    status: Optional[str] = Query(None, description="Filter by status ('ACTIVE', 'OUTBID', 'WON', 'WITHDRAWN')"),
    company_id: Optional[UUID] = Query(None, description="Filter by bidding company"),
    session_id: Optional[UUID] = Query(None, description="Filter by auction session"),
    facade: AuctionFacade = Depends(get_facade),
):
    bid_status = None
    if status:
        try:
            bid_status = BidStatus(status.upper())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail={"code": "InvalidStatus", "message": f"Invalid bid status '{status}'"},
            )

    try:
        bids = facade.list_bids(slot_id=slot_id, status=bid_status, company_id=company_id, session_id=session_id)
    except Exception as e:
        raise to_http_exception(e, "list bids")
    return [BidResponse.from_domain(bid) for bid in bids]


@router.get("/bids/{bid_id}", response_model=BidResponse, summary="Get Bid")
def get_bid(bid_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return BidResponse.from_domain(facade.get_bid(bid_id))
    except Exception as e:
        raise to_http_exception(e, "get bid")


@router.delete(
    "/bids/{bid_id}",
    response_model=BidResponse,
    summary="Withdraw Bid",
    description="Withdraw an ACTIVE bid. The slot falls back to the highest remaining bid.",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def withdraw_bid(bid_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return BidResponse.from_domain(facade.withdraw_bid(bid_id))
    except Exception as e:
        raise to_http_exception(e, "withdraw bid")


@router.post(
    "/bids/{bid_id}/accept",
    response_model=BidResponse,
    summary="Accept Bid (operator)",
    description="Award the slot to an ACTIVE bid: the bid becomes WON and the slot OCCUPIED.",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def accept_bid(bid_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return BidResponse.from_domain(facade.accept_bid(bid_id))
    except Exception as e:
        raise to_http_exception(e, "accept bid")


@router.post(
    "/bids/{bid_id}/reject",
    response_model=BidResponse,
    summary="Reject Bid (operator)",
    description="Withdraw an ACTIVE bid on the bidder's behalf.",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def reject_bid(bid_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return BidResponse.from_domain(facade.reject_bid(bid_id))
    except Exception as e:
        raise to_http_exception(e, "reject bid")
