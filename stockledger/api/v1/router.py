# stockledger/api/v1/router.py
from fastapi import APIRouter

from stockledger.config.settings import settings
from stockledger.modules.units import units_router
from stockledger.modules.stock import stock_router
from stockledger.modules.sales import sales_router
from stockledger.modules.purchases import purchases_router
from stockledger.modules.transfers import transfers_router

# Main router of API v1
api_router = APIRouter()

# ==================== MODULES ====================

api_router.include_router(units_router, prefix="/units", tags=["Units"])

api_router.include_router(stock_router, prefix="/stock", tags=["Stock"])

api_router.include_router(sales_router, prefix="/sales", tags=["Sales"])

api_router.include_router(purchases_router, prefix="/purchases", tags=["Purchases"])

api_router.include_router(transfers_router, prefix="/transfers", tags=["Transfers"])

# ==================== ROOT ====================

@api_router.get("/")
async def api_root():
    """Root endpoint of the API"""
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "available_endpoints": {
            "units": "/api/v1/units",
            "stock": "/api/v1/stock",
            "sales": "/api/v1/sales",
            "purchases": "/api/v1/purchases",
            "transfers": "/api/v1/transfers"
        }
    }

@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version
    }
