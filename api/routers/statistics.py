"""
Statistics API Endpoint.
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_facade
from api.errors import to_http_exception
from api.models import StatisticsResponse
from services.auction_facade import AuctionFacade

router = APIRouter()


@router.get(
    "/statistics",
    response_model=StatisticsResponse,
    summary="Auction Statistics",
    description="Session counts by status, bid totals, won revenue and average bid.",
)
def get_statistics(facade: AuctionFacade = Depends(get_facade)):
    try:
        return StatisticsResponse.from_domain(facade.statistics())
    except Exception as e:
        raise to_http_exception(e, "compute statistics")
