"""
Import / export tableur.

- import : upsert d'équipements par numéro de série, ligne par ligne
  (une ligne en échec ne bloque pas les autres)
- export : mouvements filtrés vers un .xlsx (en-têtes en portugais)

Les en-têtes sont résolus UNE fois par fichier via COLUMN_VARIANTS.
"""

from __future__ import annotations

import io
import logging
import math
import re
import unicodedata
import warnings
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Mapping, Sequence
from zoneinfo import ZoneInfo

import pandas as pd
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockroom.app.core.config import local_zone, settings
from stockroom.app.db.base import utcnow
from stockroom.app.db.models.core_types import MovementKind
from stockroom.app.db.models.models_v1 import Category, Equipment, Movement
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import (
    EmptyResult,
    InventoryError,
    UnrecognizedFormat,
    ValidationError,
    gateway_errors,
)
from stockroom.services.inventory import commit_or_duplicate, create_category, find_category_by_name
from stockroom.services.movements import movement_history_stmt

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# ---------- Colonnes ----------
REQUIRED_FIELDS = ("name", "serial_number", "category", "quantity")
OPTIONAL_FIELDS = ("acquisition_date", "description")

# champ canonique -> orthographes acceptées (déjà normalisées)
COLUMN_VARIANTS: dict[str, tuple[str, ...]] = {
    "name": ("nome", "name"),
    "serial_number": ("num_serie", "numero_de_serie", "no_serie", "n_serie", "serial_number", "serial"),
    "category": ("categoria", "category"),
    "quantity": ("quantidade", "quantity", "qtd", "qty"),
    "acquisition_date": ("data_aquisicao", "data_de_aquisicao", "acquisition_date", "data"),
    "description": ("descricao", "description"),
}

# ordre de résolution par sous-chaîne : le plus spécifique d'abord
_SUBSTRING_ORDER = ("serial_number", "acquisition_date", "category", "quantity", "description", "name")

# ---------- Export ----------
EXPORT_SHEET_NAME = "Movimentações"
EXPORT_COLUMNS = (
    "Equipamento",
    "Nº Série",
    "Tipo",
    "Quantidade",
    "Data",
    "Responsável",
    "Observações",
)
KIND_LABELS = {
    MovementKind.inflow: "Entrada",
    MovementKind.outflow: "Saída",
}
LOCAL_DATETIME_FORMAT = "%d/%m/%Y %H:%M:%S"

# jour 0 des numéros de série Excel (bug 1900 inclus)
EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_MAX_SERIAL = 2958465


@dataclass(frozen=True)
class ColumnMap:
    columns: dict[str, str]

    def header(self, field_name: str) -> str | None:
        return self.columns.get(field_name)

    def value(self, row: Mapping[str, Any], field_name: str) -> Any:
        header = self.columns.get(field_name)
        if header is None:
            return None
        value = row.get(header)
        if isinstance(value, float) and math.isnan(value):
            return None
        return value


@dataclass(frozen=True)
class RowFailure:
    row_number: int
    reason: str


@dataclass
class ImportSummary:
    success_count: int = 0
    failure_count: int = 0
    created_count: int = 0
    updated_count: int = 0
    failures: list[RowFailure] = field(default_factory=list)


@dataclass(frozen=True)
class MovementExportFilters:
    date_from: date
    date_to: date
    kind: MovementKind | str | None = None
    equipment_id: int | None = None


@dataclass(frozen=True)
class ExportFile:
    filename: str
    content: bytes
    row_count: int
    media_type: str = XLSX_MEDIA_TYPE


# ---------- Helpers ----------
def normalize_header(value: Any) -> str:
    text = unicodedata.normalize("NFKD", str(value)).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[\s\-.]+", "_", text.strip().lower()).strip("_")


def resolve_columns(headers: Iterable[Any]) -> ColumnMap:
    """
    En-tête -> champ canonique.

    1. correspondance exacte (après normalisation)
    2. sinon sous-chaîne, insensible à la casse
    Un en-tête n'est attribué qu'à un seul champ.
    """
    normalized = {str(h): normalize_header(h) for h in headers}
    columns: dict[str, str] = {}
    claimed: set[str] = set()

    for field_name in REQUIRED_FIELDS + OPTIONAL_FIELDS:
        for header, norm in normalized.items():
            if header not in claimed and norm in COLUMN_VARIANTS[field_name]:
                columns[field_name] = header
                claimed.add(header)
                break

    for field_name in _SUBSTRING_ORDER:
        if field_name in columns:
            continue
        for header, norm in normalized.items():
            if header in claimed:
                continue
            if any(variant in norm for variant in COLUMN_VARIANTS[field_name]):
                columns[field_name] = header
                claimed.add(header)
                break

    missing = [f for f in REQUIRED_FIELDS if f not in columns]
    if missing:
        raise UnrecognizedFormat(f"Spreadsheet is missing required columns: {', '.join(missing)}")
    return ColumnMap(columns=columns)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        # 12345.0 lu depuis Excel -> "12345"
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None


def parse_quantity(value: Any) -> int:
    if value is None:
        return 1
    if isinstance(value, bool):
        raise ValueError("Invalid quantity")
    if isinstance(value, int):
        quantity = value
    else:
        if isinstance(value, float):
            if math.isnan(value):
                return 1
            number = value
        else:
            text = str(value).strip()
            if not text:
                return 1
            number = float(text.replace(",", "."))
        # "inf", "nan", 2.7 : jamais tronqués
        if not math.isfinite(number) or not number.is_integer():
            raise ValueError(f"Invalid quantity: {value!r}")
        quantity = int(number)
    if quantity < 0:
        raise ValueError("Quantity cannot be negative")
    return quantity


def normalize_acquisition_date(value: Any, today: date) -> date:
    """Cellule -> date. Illisible ou vide : aujourd'hui."""
    if value is None:
        return today
    if isinstance(value, datetime):
        if pd.isna(value):
            return today
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if math.isnan(value) or not 0 < value <= EXCEL_MAX_SERIAL:
            return today
        return (EXCEL_EPOCH + timedelta(days=float(value))).date()

    text = str(value).strip()
    if not text:
        return today
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", UserWarning)
        parsed = pd.to_datetime(text, dayfirst=True, errors="coerce")
    if pd.isna(parsed):
        return today
    return parsed.date()


def format_local_datetime(value: datetime, zone: ZoneInfo) -> str:
    # SQLite rend des datetimes naïfs : ils sont stockés en UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(zone).strftime(LOCAL_DATETIME_FORMAT)


def export_bounds(filters: MovementExportFilters, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Début de journée inclus -> fin de journée incluse, convertis en UTC."""
    start = datetime.combine(filters.date_from, time.min, tzinfo=zone)
    end = datetime.combine(filters.date_to, time.max, tzinfo=zone)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


# ---------- IMPORT ----------
def parse_spreadsheet(content: bytes, filename: str | None = None) -> list[dict[str, Any]]:
    """
    Première feuille -> liste de {en-tête: valeur}, cellules vides = None.

    .xlsx/.xls via pandas ; .csv si le nom de fichier l'indique.
    """
    if not content:
        raise UnrecognizedFormat("The file is empty")

    try:
        if filename and filename.lower().endswith(".csv"):
            frame = pd.read_csv(io.BytesIO(content), dtype=object)
        else:
            frame = pd.read_excel(io.BytesIO(content), sheet_name=0, dtype=object)
    except ImportError:
        raise
    except Exception as exc:
        logger.warning("Could not read spreadsheet %s: %s", filename or "<upload>", exc)
        raise UnrecognizedFormat("The file could not be read as a spreadsheet") from exc

    frame.columns = [str(c).strip() for c in frame.columns]
    frame = frame.dropna(how="all")
    if frame.empty:
        raise UnrecognizedFormat("The spreadsheet has no data rows")

    resolve_columns(frame.columns)

    frame = frame.astype(object).where(pd.notna(frame), None)
    return frame.to_dict(orient="records")


def preview_rows(rows: Sequence[Mapping[str, Any]], limit: int | None = None) -> list[Mapping[str, Any]]:
    if limit is None:
        limit = settings.IMPORT_PREVIEW_LIMIT
    if limit < 0:
        raise ValidationError("Preview limit cannot be negative")
    return list(rows[:limit])


def _resolve_category(
    db: Session,
    actor: ActingIdentity,
    name: str,
    cache: dict[str, int],
) -> int:
    key = name.lower()
    if key in cache:
        return cache[key]

    with gateway_errors(db, "import_equipment: category lookup"):
        category = find_category_by_name(db, name)
    if category is None:
        category = create_category(db, actor, name=name)
        logger.info("Import created category %s (%s)", category.id, category.name)

    cache[key] = int(category.id)
    return cache[key]


def _import_row(
    db: Session,
    actor: ActingIdentity,
    columns: ColumnMap,
    row: Mapping[str, Any],
    categories: dict[str, int],
    today: date,
) -> bool:
    """Retourne True si la ligne a créé un équipement, False si mise à jour."""
    name = _text(columns.value(row, "name"))
    serial_number = _text(columns.value(row, "serial_number"))
    if not name:
        raise ValidationError("Name is required")
    if not serial_number:
        raise ValidationError("Serial number is required")

    try:
        quantity = parse_quantity(columns.value(row, "quantity"))
    except ValueError as exc:
        raise ValidationError(f"Invalid quantity: {columns.value(row, 'quantity')!r}") from exc

    category_name = _text(columns.value(row, "category")) or settings.DEFAULT_CATEGORY_NAME
    category_id = _resolve_category(db, actor, category_name, categories)
    acquisition_date = normalize_acquisition_date(columns.value(row, "acquisition_date"), today)
    description = _text(columns.value(row, "description"))

    with gateway_errors(db, "import_equipment: upsert"):
        existing = (
            db.execute(select(Equipment).where(Equipment.serial_number == serial_number))
            .scalars()
            .first()
        )
        if existing is not None:
            existing.name = name
            existing.category_id = category_id
            existing.quantity = quantity
            existing.description = description
            existing.updated_at = utcnow()
        else:
            db.add(
                Equipment(
                    name=name,
                    serial_number=serial_number,
                    category_id=category_id,
                    quantity=quantity,
                    acquisition_date=acquisition_date,
                    description=description,
                )
            )
        commit_or_duplicate(db, [serial_number])
    return existing is None


def import_equipment(
    db: Session,
    actor: ActingIdentity,
    rows: Sequence[Mapping[str, Any]],
) -> ImportSummary:
    """
    Upsert par numéro de série, strictement séquentiel.

    Chaque ligne est commitée (ou rollback) seule. Les échecs sont comptés,
    jamais levés.
    """
    require_capability(actor, Capability.import_equipment)

    summary = ImportSummary()
    if not rows:
        return summary

    columns = resolve_columns(rows[0].keys())
    today = datetime.now(local_zone()).date()

    with gateway_errors(db, "import_equipment: load categories"):
        categories: dict[str, int] = {}
        for category in db.execute(select(Category).order_by(Category.id.asc())).scalars():
            categories.setdefault(category.name.strip().lower(), int(category.id))

    # ligne 1 = en-têtes
    for row_number, row in enumerate(rows, start=2):
        try:
            created = _import_row(db, actor, columns, row, categories, today)
        except InventoryError as exc:
            summary.failure_count += 1
            summary.failures.append(RowFailure(row_number=row_number, reason=exc.message))
            logger.warning("Import row %d skipped: %s", row_number, exc.message)
            continue

        summary.success_count += 1
        if created:
            summary.created_count += 1
        else:
            summary.updated_count += 1

    logger.info(
        "Import finished by %s: %d ok (%d created, %d updated), %d failed",
        actor.user_id,
        summary.success_count,
        summary.created_count,
        summary.updated_count,
        summary.failure_count,
    )
    return summary


# ---------- EXPORT ----------
def movement_export_rows(
    db: Session,
    actor: ActingIdentity,
    filters: MovementExportFilters,
) -> list[dict[str, Any]]:
    require_capability(actor, Capability.export_movements)

    if filters.date_from > filters.date_to:
        raise ValidationError("Start date must not be after end date")

    zone = local_zone()
    start, end = export_bounds(filters, zone)

    stmt = (
        movement_history_stmt()
        .where(Movement.happened_at >= start)
        .where(Movement.happened_at <= end)
    )
    if filters.kind is not None:
        try:
            kind = MovementKind(filters.kind)
        except ValueError:
            raise ValidationError(f"Unknown movement kind: {filters.kind}") from None
        stmt = stmt.where(Movement.kind == kind)
    if filters.equipment_id is not None:
        stmt = stmt.where(Movement.equipment_id == filters.equipment_id)

    with gateway_errors(db, "export_movements"):
        rows = db.execute(stmt).all()

    if not rows:
        raise EmptyResult("No movements found for the selected filters")

    return [
        {
            "Equipamento": equipment_name or "",
            "Nº Série": serial_number or "",
            "Tipo": KIND_LABELS[movement.kind],
            "Quantidade": movement.quantity,
            "Data": format_local_datetime(movement.happened_at, zone),
            "Responsável": user_name or "",
            "Observações": movement.notes or "",
        }
        for movement, equipment_name, serial_number, user_name in rows
    ]


def export_movements(
    db: Session,
    actor: ActingIdentity,
    filters: MovementExportFilters,
) -> ExportFile:
    rows = movement_export_rows(db, actor, filters)

    frame = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)

    filename = f"movimentacoes_{datetime.now(local_zone()).date().isoformat()}.xlsx"
    logger.info("Exported %d movements to %s for %s", len(rows), filename, actor.user_id)
    return ExportFile(filename=filename, content=buffer.getvalue(), row_count=len(rows))
