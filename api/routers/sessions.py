"""
Auction Sessions API Endpoints.

Endpoints for scheduling sessions, driving their state machine and reading
session projections (active sessions, winners).
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from api.dependencies import get_facade
from api.errors import to_http_exception
from api.models import (
    BindSlotsRequest,
    ErrorResponse,
    ExtendSessionRequest,
    SessionCreateRequest,
    SessionOutcomeResponse,
    SessionResponse,
    SessionUpdateRequest,
    WinnerResponse,
)
from domain.auction_session import SessionStatus
from services.auction_facade import AuctionFacade
from services.session_controller import CreateSessionRequest, UpdateSessionRequest

router = APIRouter()

_ERRORS = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=201,
    summary="Create Auction Session",
    description="Schedule an auction session, optionally binding AVAILABLE slots to it.",
    responses=_ERRORS,
)
def create_session(request: SessionCreateRequest, facade: AuctionFacade = Depends(get_facade)):
    """
    Create an auction session in SCHEDULED status.

    **Rules:**
    - `end_time` must be after `start_time`, and `start_time` not in the past
    - `extend_duration_seconds` >= 60, `max_extensions` >= 0, `bid_increment` > 0
    - Bound slots must be AVAILABLE, without a current bid, and not in another session

    The session does not start on its own; call `POST /sessions/{id}/start`.
    """
    try:
        session = facade.create_session(
            CreateSessionRequest(
                name=request.name,
                description=request.description,
                start_time=request.utc_start_time(),
                end_time=request.utc_end_time(),
                bid_increment=request.bid_increment,
                reserve_price=request.reserve_price,
                auto_extend=request.auto_extend,
                extend_duration_seconds=request.extend_duration_seconds,
                max_extensions=request.max_extensions,
                slot_ids=tuple(request.slot_ids),
            )
        )
    except Exception as e:
        raise to_http_exception(e, "create auction session")
    return SessionResponse.from_domain(session)


@router.get(
    "/sessions",
    response_model=List[SessionResponse],
    summary="List Auction Sessions",
    description="List sessions (latest start first), optionally filtered by status.",
)
def list_sessions(
    status: Optional[str] = Query(
        None, description="Filter by status ('SCHEDULED', 'ACTIVE', 'PAUSED', 'COMPLETED', 'CANCELLED')"
    ),
    facade: AuctionFacade = Depends(get_facade),
):
    session_status = None
    if status:
        try:
            session_status = SessionStatus(status.upper())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail={"code": "InvalidStatus", "message": f"Invalid session status '{status}'"},
            )

    try:
        sessions = facade.list_sessions(session_status)
    except Exception as e:
        raise to_http_exception(e, "list auction sessions")
    return [SessionResponse.from_domain(s) for s in sessions]


@router.get("/sessions/active", response_model=List[SessionResponse], summary="List Active Sessions")
def list_active_sessions(facade: AuctionFacade = Depends(get_facade)):
    try:
        sessions = facade.active_sessions()
    except Exception as e:
        raise to_http_exception(e, "list active sessions")
    return [SessionResponse.from_domain(s) for s in sessions]


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Get Auction Session", responses=_ERRORS)
def get_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SessionResponse.from_domain(facade.get_session(session_id))
    except Exception as e:
        raise to_http_exception(e, "get auction session")


@router.put(
    "/sessions/{session_id}",
    response_model=SessionResponse,
    summary="Update Auction Session",
    description="Edit the name, times, increment, reserve or extension settings of a SCHEDULED session.",
    responses=_ERRORS,
)
def update_session(session_id: UUID, request: SessionUpdateRequest, facade: AuctionFacade = Depends(get_facade)):
    """
    Partially update a session before it starts.

    **Rules:**
    - Only SCHEDULED sessions can be edited (400 `InvalidSessionTransition` otherwise)
    - The merged settings follow the creation rules; a new `start_time` must not be in the past
    - Once ACTIVE, `end_time` only moves through `POST /sessions/{id}/extend`
    """
    try:
        session = facade.update_session(
            session_id,
            UpdateSessionRequest(
                name=request.name,
                description=request.description,
                start_time=request.utc_start_time(),
                end_time=request.utc_end_time(),
                bid_increment=request.bid_increment,
                reserve_price=request.reserve_price,
                clear_reserve_price=request.clears_reserve_price(),
                auto_extend=request.auto_extend,
                extend_duration_seconds=request.extend_duration_seconds,
                max_extensions=request.max_extensions,
            ),
        )
    except Exception as e:
        raise to_http_exception(e, "update auction session")
    return SessionResponse.from_domain(session)


@router.get(
    "/sessions/{session_id}/winners",
    response_model=List[WinnerResponse],
    summary="Session Winners",
    description="Winning bids of a session, ordered by slot number.",
    responses=_ERRORS,
)
def get_winners(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        winners = facade.winners(session_id)
    except Exception as e:
        raise to_http_exception(e, "list session winners")
    return [WinnerResponse.from_domain(w) for w in winners]


@router.post(
    "/sessions/{session_id}/slots",
    response_model=SessionResponse,
    summary="Bind Slots",
    description="Bind more slots to a SCHEDULED session.",
    responses=_ERRORS,
)
def bind_slots(session_id: UUID, request: BindSlotsRequest, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SessionResponse.from_domain(facade.bind_slots(session_id, request.slot_ids))
    except Exception as e:
        raise to_http_exception(e, "bind slots")


@router.post("/sessions/{session_id}/start", response_model=SessionResponse, summary="Start Session", responses=_ERRORS)
def start_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    """SCHEDULED -> ACTIVE. Bound slots become AUCTION_ACTIVE."""
    try:
        return SessionResponse.from_domain(facade.start_session(session_id))
    except Exception as e:
        raise to_http_exception(e, "start auction session")


@router.post("/sessions/{session_id}/pause", response_model=SessionResponse, summary="Pause Session", responses=_ERRORS)
def pause_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SessionResponse.from_domain(facade.pause_session(session_id))
    except Exception as e:
        raise to_http_exception(e, "pause auction session")


@router.post("/sessions/{session_id}/resume", response_model=SessionResponse, summary="Resume Session", responses=_ERRORS)
def resume_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SessionResponse.from_domain(facade.resume_session(session_id))
    except Exception as e:
        raise to_http_exception(e, "resume auction session")


@router.post(
    "/sessions/{session_id}/end",
    response_model=SessionOutcomeResponse,
    summary="End Session",
    description="Complete the session: slots with a winning bid become OCCUPIED, the rest AVAILABLE.",
    responses=_ERRORS,
)
def end_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        outcome = facade.end_session(session_id)
    except Exception as e:
        raise to_http_exception(e, "end auction session")
    return SessionOutcomeResponse.from_domain(outcome)


@router.post(
    "/sessions/{session_id}/extend",
    response_model=SessionResponse,
    summary="Extend Session",
    description="Push the end time back (defaults to the session's extend duration). Limited by max_extensions.",
    responses=_ERRORS,
)
def extend_session(
    session_id: UUID,
    request: Optional[ExtendSessionRequest] = Body(None),
    facade: AuctionFacade = Depends(get_facade),
):
    duration = request.duration_seconds if request is not None else None
    try:
        return SessionResponse.from_domain(facade.extend_session(session_id, duration))
    except Exception as e:
        raise to_http_exception(e, "extend auction session")


@router.post("/sessions/{session_id}/cancel", response_model=SessionResponse, summary="Cancel Session", responses=_ERRORS)
def cancel_session(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    """Cancel a live session. Bound slots are released without resolving winners."""
    try:
        return SessionResponse.from_domain(facade.cancel_session(session_id))
    except Exception as e:
        raise to_http_exception(e, "cancel auction session")


@router.post(
    "/sessions/{session_id}/notify-ending",
    response_model=SessionResponse,
    summary="Announce Session Ending",
    description="Broadcast an URGENT AUCTION_ENDING notification for an ACTIVE session.",
    responses=_ERRORS,
)
def notify_ending(session_id: UUID, facade: AuctionFacade = Depends(get_facade)):
    try:
        return SessionResponse.from_domain(facade.notify_ending(session_id))
    except Exception as e:
        raise to_http_exception(e, "announce session ending")
