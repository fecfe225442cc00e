# pharmacy_pos/api/router.py
from fastapi import APIRouter
from pharmacy_pos.api import (
    routes_sales,
    routes_credit,
    routes_stock,
)

api_router = APIRouter()

api_router.include_router(routes_sales.router)
api_router.include_router(routes_credit.router)
api_router.include_router(routes_stock.router)
