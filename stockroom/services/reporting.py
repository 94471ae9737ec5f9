from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.app.core.config import local_zone
from stockroom.app.db.models.core_types import MovementKind
from stockroom.app.db.models.models_v1 import Equipment, Movement
from stockroom.services.access import ActingIdentity, Capability, require_capability
from stockroom.services.errors import gateway_errors

MONTH_LABELS_PT = ("jan", "fev", "mar", "abr", "mai", "jun", "jul", "ago", "set", "out", "nov", "dez")
CHART_MONTHS = 6


@dataclass(frozen=True)
class MonthlyFlow:
    year: int
    month: int
    label: str
    inflow: int = 0
    outflow: int = 0


@dataclass
class DashboardSummary:
    total_quantity: int
    total_inflow: int
    total_outflow: int
    months: list[MonthlyFlow] = field(default_factory=list)


def _month_keys(now: datetime, count: int) -> list[tuple[int, int]]:
    keys = []
    year, month = now.year, now.month
    for _ in range(count):
        keys.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def dashboard_summary(db: Session, actor: ActingIdentity, *, now: datetime | None = None) -> DashboardSummary:
    """
    Totaux du tableau de bord + entrées/sorties des 6 derniers mois
    (mois calendaires, fuseau local).
    """
    require_capability(actor, Capability.read_inventory)

    zone = local_zone()
    now = (now or datetime.now(timezone.utc)).astimezone(zone)
    keys = _month_keys(now, CHART_MONTHS)
    first_year, first_month = keys[0]
    since = datetime(first_year, first_month, 1, tzinfo=zone).astimezone(timezone.utc)

    with gateway_errors(db, "dashboard_summary"):
        total_quantity = db.execute(select(func.coalesce(func.sum(Equipment.quantity), 0))).scalar_one()
        totals = dict(
            db.execute(
                select(Movement.kind, func.coalesce(func.sum(Movement.quantity), 0)).group_by(Movement.kind)
            ).all()
        )
        recent = db.execute(
            select(Movement.kind, Movement.quantity, Movement.happened_at).where(Movement.happened_at >= since)
        ).all()

    buckets = {key: {MovementKind.inflow: 0, MovementKind.outflow: 0} for key in keys}
    for kind, quantity, happened_at in recent:
        if happened_at.tzinfo is None:
            happened_at = happened_at.replace(tzinfo=timezone.utc)
        local = happened_at.astimezone(zone)
        bucket = buckets.get((local.year, local.month))
        if bucket is not None:
            bucket[kind] += quantity

    return DashboardSummary(
        total_quantity=int(total_quantity),
        total_inflow=int(totals.get(MovementKind.inflow, 0)),
        total_outflow=int(totals.get(MovementKind.outflow, 0)),
        months=[
            MonthlyFlow(
                year=year,
                month=month,
                label=MONTH_LABELS_PT[month - 1],
                inflow=buckets[(year, month)][MovementKind.inflow],
                outflow=buckets[(year, month)][MovementKind.outflow],
            )
            for year, month in keys
        ],
    )
