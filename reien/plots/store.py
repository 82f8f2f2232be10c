from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from reien.core.enums import PhysicalPlotStatus
from reien.core.extensions import db
from reien.core.models import ContractPlot, PhysicalPlot


@dataclass(frozen=True)
class Allocation:
    id: int
    area: Decimal


@dataclass(frozen=True)
class PlotAllocations:
    plot_id: int
    total_area: Decimal
    allocations: list[Allocation] = field(default_factory=list)

    @property
    def allocated_area(self) -> Decimal:
        return sum((allocation.area for allocation in self.allocations), Decimal("0"))


def active_physical_plot(plot_id: int, for_update: bool = False) -> PhysicalPlot | None:
    query = db.session.query(PhysicalPlot).filter(
        PhysicalPlot.id == plot_id,
        PhysicalPlot.deleted_at.is_(None),
    )
    if for_update:
        query = query.with_for_update()
    return query.one_or_none()


def get_physical_plot_with_active_allocations(
    plot_id: int, exclude_allocation_id: int | None = None
) -> PlotAllocations | None:
    plot = active_physical_plot(plot_id)
    if plot is None:
        return None
    query = db.session.query(ContractPlot.id, ContractPlot.contract_area_sqm).filter(
        ContractPlot.physical_plot_id == plot.id,
        ContractPlot.deleted_at.is_(None),
    )
    if exclude_allocation_id is not None:
        query = query.filter(ContractPlot.id != exclude_allocation_id)
    allocations = [
        Allocation(id=row_id, area=Decimal(str(area)))
        for row_id, area in query.order_by(ContractPlot.id.asc()).all()
    ]
    return PlotAllocations(
        plot_id=plot.id,
        total_area=Decimal(str(plot.area_sqm)),
        allocations=allocations,
    )


def set_physical_plot_status(plot_id: int, status: PhysicalPlotStatus) -> bool:
    """Persist ``status``; returns True when the stored value changed."""
    plot = db.session.get(PhysicalPlot, plot_id)
    if plot is None or plot.status == status:
        return False
    plot.status = status
    db.session.flush()
    return True
