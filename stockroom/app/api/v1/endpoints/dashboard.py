from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.services.access import ActingIdentity
from stockroom.services.reporting import dashboard_summary

router = APIRouter(prefix="/dashboard")


@router.get("")
def get_dashboard(
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    summary = dashboard_summary(db, actor)
    return {
        "total_quantity": summary.total_quantity,
        "total_inflow": summary.total_inflow,
        "total_outflow": summary.total_outflow,
        "months": [
            {"label": m.label, "year": m.year, "month": m.month, "inflow": m.inflow, "outflow": m.outflow}
            for m in summary.months
        ],
    }
