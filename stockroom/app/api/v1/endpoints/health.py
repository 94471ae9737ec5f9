from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_db
from stockroom.services.errors import gateway_errors

router = APIRouter(prefix="/health")


@router.get("")
def health(db: Session = Depends(get_db)):
    with gateway_errors(db, "health"):
        db.execute(text("SELECT 1"))
    return {"status": "ok"}
