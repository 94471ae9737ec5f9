from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, File, Response, UploadFile
from sqlalchemy.orm import Session

from stockroom.app.api.deps import get_acting_identity, get_db
from stockroom.app.db.models.core_types import MovementKind
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services import transfer
from stockroom.services.transfer import MovementExportFilters

router = APIRouter(prefix="/transfer")


def _read_upload(file: UploadFile) -> list[dict]:
    return transfer.parse_spreadsheet(file.file.read(), file.filename)


@router.post("/import/preview")
def preview_import(
    file: UploadFile = File(...),
    limit: int | None = None,
    actor: ActingIdentity = Depends(get_acting_identity),
):
    require_capability(actor, Capability.import_equipment)

    rows = _read_upload(file)
    columns = transfer.resolve_columns(rows[0].keys())
    return {
        "row_count": len(rows),
        "columns": columns.columns,
        "rows": transfer.preview_rows(rows, limit),
    }


@router.post("/import")
def import_equipment(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    """
    Upsert par numéro de série. Réponse 200 même si des lignes échouent :
    le détail est dans failures.
    """
    require_capability(actor, Capability.import_equipment)

    summary = transfer.import_equipment(db, actor, _read_upload(file))
    return {
        "success_count": summary.success_count,
        "failure_count": summary.failure_count,
        "created_count": summary.created_count,
        "updated_count": summary.updated_count,
        "failures": [{"row": f.row_number, "reason": f.reason} for f in summary.failures],
    }


@router.get("/export/movements")
def export_movements(
    date_from: date,
    date_to: date,
    kind: MovementKind | None = None,
    equipment_id: int | None = None,
    db: Session = Depends(get_db),
    actor: ActingIdentity = Depends(get_acting_identity),
):
    export = transfer.export_movements(
        db,
        actor,
        MovementExportFilters(date_from=date_from, date_to=date_to, kind=kind, equipment_id=equipment_id),
    )
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{export.filename}"',
            "X-Row-Count": str(export.row_count),
        },
    )
