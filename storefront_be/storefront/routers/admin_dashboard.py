from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.models.user import get_db
from storefront.services.reports import AdminReports
from storefront.utils.security import Caller, require_admin


router = APIRouter()


# Get Dashboard Overview
@router.get("/overview")
def get_dashboard_overview(db: Session = Depends(get_db), admin: Caller = Depends(require_admin)):
    return AdminReports(db).overview()


# Paid revenue per calendar month, oldest first
@router.get("/monthly-revenue")
def get_monthly_revenue(
    months: int = Query(6, ge=1, le=24),
    db: Session = Depends(get_db),
    admin: Caller = Depends(require_admin),
):
    return {"success": True, "monthlyData": AdminReports(db).monthly_revenue(months=months)}
