"""
FastAPI dependencies.

One AuctionFacade per process, built from the environment on first use.
Tests replace it through `app.dependency_overrides[get_facade]`.
"""

from functools import lru_cache

from services.auction_facade import AuctionFacade, build_default_facade
from settings import load_settings


@lru_cache(maxsize=1)
def get_facade() -> AuctionFacade:
    return build_default_facade(load_settings())
