from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from sqlalchemy import func

from reien.core.extensions import db
from reien.core.models import ContractPlot, PhysicalPlot
from reien.plots.inventory import AREA_QUANTUM, ZERO

COUNT_QUANTUM = Decimal("0.01")
RATE_QUANTUM = Decimal("0.1")


def _plot_rows(area_name: str | None = None) -> list[tuple[PhysicalPlot, Decimal]]:
    allocated = (
        db.session.query(
            ContractPlot.physical_plot_id.label("plot_id"),
            func.sum(ContractPlot.contract_area_sqm).label("allocated"),
        )
        .filter(ContractPlot.deleted_at.is_(None))
        .group_by(ContractPlot.physical_plot_id)
        .subquery()
    )
    query = (
        db.session.query(PhysicalPlot, allocated.c.allocated)
        .outerjoin(allocated, allocated.c.plot_id == PhysicalPlot.id)
        .filter(PhysicalPlot.deleted_at.is_(None))
    )
    if area_name:
        query = query.filter(PhysicalPlot.area_name == area_name)
    rows = query.order_by(PhysicalPlot.plot_number.asc()).all()
    return [(plot, Decimal(str(used or 0)).quantize(AREA_QUANTUM)) for plot, used in rows]


def _figures(rows: Iterable[tuple[PhysicalPlot, Decimal]]) -> dict[str, Any]:
    total_count = 0
    used_count = ZERO
    total_area = ZERO
    used_area = ZERO
    for plot, allocated in rows:
        plot_area = Decimal(str(plot.area_sqm)).quantize(AREA_QUANTUM)
        total_count += 1
        total_area += plot_area
        used_area += allocated
        # A partially sold plot counts as the sold fraction of one plot.
        used_count += allocated / plot_area

    remaining_count = total_count - used_count
    usage_rate = used_count / total_count * 100 if total_count else ZERO
    return {
        "total_count": total_count,
        "used_count": used_count.quantize(COUNT_QUANTUM, rounding=ROUND_HALF_UP),
        "remaining_count": remaining_count.quantize(COUNT_QUANTUM, rounding=ROUND_HALF_UP),
        "usage_rate": Decimal(usage_rate).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP),
        "total_area": total_area.quantize(AREA_QUANTUM),
        "remaining_area": (total_area - used_area).quantize(AREA_QUANTUM),
    }


def overall_summary() -> dict[str, Any]:
    return _figures(_plot_rows())


def section_summary(area_name: str | None = None) -> list[dict[str, Any]]:
    """Inventory figures per period (``area_name``) and plot-number section."""
    groups: dict[tuple[str, str], list[tuple[PhysicalPlot, Decimal]]] = defaultdict(list)
    for plot, allocated in _plot_rows(area_name):
        groups[(plot.area_name, plot.section)].append((plot, allocated))

    items = []
    for (period, section), rows in sorted(groups.items()):
        item = {"period": period, "section": section}
        item.update(_figures(rows))
        items.append(item)
    return items
