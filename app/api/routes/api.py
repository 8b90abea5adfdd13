from fastapi import APIRouter

from app.api.routes import receipts, reports

api_router = APIRouter()

# Include the different routers
api_router.include_router(receipts.router, prefix="/receipts", tags=["receipts"])
api_router.include_router(reports.router, prefix="/reports", tags=["reports"])
