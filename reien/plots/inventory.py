"""Plot inventory allocation.

A physical plot has a fixed sellable area. Contract plots claim parts of it;
the unclaimed remainder and the plot's ``status`` are always derived from the
set of non-deleted contract plots, never stored independently.

Reading the remainder and later writing an allocation are two steps, so every
mutation runs inside :func:`allocation_scope`, which holds a row lock on the
physical plot for the whole check, write and recompute sequence.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Iterator

from flask import current_app, has_app_context

from reien.core.enums import PhysicalPlotStatus
from reien.core.errors import InventoryInvariantError, PlotNotFoundError
from reien.core.extensions import db
from reien.core.i18n import translate
from reien.core.models import PhysicalPlot
from reien.core.utils import format_area
from reien.plots.store import (
    PlotAllocations,
    active_physical_plot,
    get_physical_plot_with_active_allocations,
    set_physical_plot_status,
)

logger = logging.getLogger(__name__)

AREA_QUANTUM = Decimal("0.01")
# Largest value a Numeric(8, 2) area column holds.
MAX_AREA = Decimal("999999.99")
DEFAULT_STANDARD_AREA_SIZES: tuple[Decimal, ...] = (Decimal("1.8"), Decimal("3.6"))
ZERO = Decimal("0")


@dataclass(frozen=True)
class AreaValidation:
    is_valid: bool
    available_area: Decimal
    message: str | None = None

    def as_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "is_valid": self.is_valid,
            "available_area": str(self.available_area),
        }
        if self.message:
            data["message"] = self.message
        return data


def _decimal_area(value) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Invalid area: {value!r}")
    raw = str(value).strip().replace(",", ".") if value is not None else ""
    if not raw:
        raise ValueError("Area is required")
    try:
        area = Decimal(raw)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid area: {value!r}") from exc
    if not area.is_finite():
        raise ValueError(f"Invalid area: {value!r}")
    return area


def to_area(value) -> Decimal:
    """Parse ``value`` as square meters; more than two decimals is rejected, not rounded."""
    area = _decimal_area(value)
    if abs(area) > MAX_AREA:
        raise ValueError(f"Area out of range: {value!r}")
    quantized = area.quantize(AREA_QUANTUM)
    if quantized != area:
        raise ValueError(f"Area allows at most two decimals: {value!r}")
    return quantized


def _snapshot(plot_id: int, exclude_contract_plot_id: int | None = None) -> PlotAllocations:
    snapshot = get_physical_plot_with_active_allocations(plot_id, exclude_contract_plot_id)
    if snapshot is None:
        raise PlotNotFoundError(plot_id)
    return snapshot


def _available_area(snapshot: PlotAllocations) -> Decimal:
    total = snapshot.total_area.quantize(AREA_QUANTUM)
    allocated = snapshot.allocated_area.quantize(AREA_QUANTUM)
    available = total - allocated
    if available < ZERO:
        logger.error(
            "Allocation invariant violated on physical plot %s: allocated=%s total=%s",
            snapshot.plot_id,
            allocated,
            total,
        )
        raise InventoryInvariantError(snapshot.plot_id, total, allocated)
    return available


def calculate_available_area(plot_id: int) -> Decimal:
    return _available_area(_snapshot(plot_id))


def validate_contract_area(
    plot_id: int,
    proposed_area,
    exclude_contract_plot_id: int | None = None,
) -> AreaValidation:
    """Check whether ``proposed_area`` can still be allocated on the plot.

    Every failure is returned as ``is_valid=False`` with a message meant for
    the user; nothing is raised for a missing plot or a bad area. Pass
    ``exclude_contract_plot_id`` when resizing an existing allocation so its
    current footprint does not count against itself.
    """
    snapshot = get_physical_plot_with_active_allocations(plot_id, exclude_contract_plot_id)
    if snapshot is None:
        return AreaValidation(False, ZERO, translate("area.plot_not_found"))

    available = _available_area(snapshot)
    try:
        requested = _decimal_area(proposed_area)
    except ValueError:
        return AreaValidation(False, available, translate("area.not_a_number"))

    if requested <= ZERO:
        return AreaValidation(False, available, translate("area.not_positive"))
    if requested > MAX_AREA:
        return AreaValidation(
            False, available, translate("area.out_of_range", maximum=format_area(MAX_AREA))
        )
    if requested != requested.quantize(AREA_QUANTUM):
        return AreaValidation(False, available, translate("area.too_precise"))
    if requested > available:
        return AreaValidation(
            False,
            available,
            translate(
                "area.exceeds_available",
                requested=format_area(requested),
                available=format_area(available),
            ),
        )
    return AreaValidation(True, available)


def derive_plot_status(total_area: Decimal, available_area: Decimal) -> PhysicalPlotStatus:
    if available_area == total_area:
        return PhysicalPlotStatus.AVAILABLE
    if available_area > ZERO:
        return PhysicalPlotStatus.PARTIALLY_SOLD
    return PhysicalPlotStatus.SOLD_OUT


def update_physical_plot_status(plot_id: int) -> PhysicalPlotStatus:
    """Recompute and store the plot's status; the only writer of that column."""
    snapshot = _snapshot(plot_id)
    available = _available_area(snapshot)
    status = derive_plot_status(snapshot.total_area.quantize(AREA_QUANTUM), available)
    if set_physical_plot_status(plot_id, status):
        logger.info("Physical plot %s status -> %s (available %s㎡)", plot_id, status.value, available)
    else:
        logger.debug("Physical plot %s status unchanged (%s)", plot_id, status.value)
    return status


def is_fully_available(plot_id: int) -> bool:
    snapshot = get_physical_plot_with_active_allocations(plot_id)
    if snapshot is None:
        return False
    return not snapshot.allocations


def is_fully_sold(plot_id: int) -> bool:
    return calculate_available_area(plot_id) == ZERO


def configured_area_sizes() -> tuple[Decimal, ...]:
    if has_app_context():
        return tuple(current_app.config.get("STANDARD_AREA_SIZES") or DEFAULT_STANDARD_AREA_SIZES)
    return DEFAULT_STANDARD_AREA_SIZES


def get_available_area_options(
    plot_id: int, standard_sizes: Iterable[Decimal] | None = None
) -> list[Decimal]:
    available = calculate_available_area(plot_id)
    sizes = configured_area_sizes() if standard_sizes is None else standard_sizes
    return sorted({to_area(size) for size in sizes if to_area(size) <= available})


@contextmanager
def allocation_scope(plot_id: int) -> Iterator[PhysicalPlot]:
    """Lock the physical plot for one allocation change and commit it.

    Rolls back on any error so a rejected or invariant-breaking change leaves
    no partial write behind.
    """
    try:
        plot = active_physical_plot(plot_id, for_update=True)
        if plot is None:
            raise PlotNotFoundError(plot_id)
        yield plot
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
