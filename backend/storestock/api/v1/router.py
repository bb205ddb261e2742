"""storestock — API v1 router aggregation."""
from fastapi import APIRouter

from storestock.api.v1.endpoints import locations, movements, stock, transfers

api_router = APIRouter()

api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["transfers"])
api_router.include_router(movements.router, prefix="/movements", tags=["movements"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
