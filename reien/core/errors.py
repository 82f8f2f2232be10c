"""Domain error hierarchy.

Errors derive from ``ValueError`` so callers that treat user-correctable
failures as ``ValueError`` keep working; the API maps each class to one HTTP
status.
"""

from __future__ import annotations

from typing import Any


class ReienError(ValueError):
    code = "VALIDATION_ERROR"

    def details(self) -> dict[str, Any]:
        return {}


class NotFoundError(ReienError):
    code = "NOT_FOUND"


class PlotNotFoundError(NotFoundError):
    def __init__(self, plot_id: Any, message: str | None = None):
        self.plot_id = plot_id
        super().__init__(message or f"Physical plot not found: {plot_id}")

    def details(self) -> dict[str, Any]:
        return {"plot_id": self.plot_id}


class ContractPlotNotFoundError(NotFoundError):
    def __init__(self, contract_plot_id: Any, message: str | None = None):
        self.contract_plot_id = contract_plot_id
        super().__init__(message or f"Contract plot not found: {contract_plot_id}")

    def details(self) -> dict[str, Any]:
        return {"contract_plot_id": self.contract_plot_id}


class CustomerNotFoundError(NotFoundError):
    def __init__(self, customer_id: Any, message: str | None = None):
        self.customer_id = customer_id
        super().__init__(message or f"Customer not found: {customer_id}")

    def details(self) -> dict[str, Any]:
        return {"customer_id": self.customer_id}


class ContractRuleError(ReienError):
    """A contract lifecycle rule rejected the request."""


class ContractStatusTransitionError(ContractRuleError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, from_status, to_status, message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot transition from {_value(from_status)} to {_value(to_status)}"
        )

    def details(self) -> dict[str, Any]:
        return {"from": _value(self.from_status), "to": _value(self.to_status)}


class ContractOperationNotAllowedError(ContractRuleError):
    code = "OPERATION_NOT_ALLOWED"

    def __init__(self, status, operation, message: str | None = None):
        self.status = status
        self.operation = operation
        super().__init__(
            message
            or f"Operation '{_value(operation)}' is not allowed when contract status is '{_value(status)}'"
        )

    def details(self) -> dict[str, Any]:
        return {"status": _value(self.status), "operation": _value(self.operation)}


class PaymentStatusMismatchError(ContractRuleError):
    code = "PAYMENT_STATUS_MISMATCH"

    def __init__(self, contract_status, payment_status, message: str | None = None):
        self.contract_status = contract_status
        self.payment_status = payment_status
        super().__init__(
            message
            or f"Payment status '{_value(payment_status)}' is not valid for contract status '{_value(contract_status)}'"
        )

    def details(self) -> dict[str, Any]:
        return {
            "contract_status": _value(self.contract_status),
            "payment_status": _value(self.payment_status),
        }


class AreaValidationError(ReienError):
    """A mutation was rejected because the requested area is not obtainable."""

    def __init__(self, result):
        self.result = result
        super().__init__(result.message or "Invalid contract area")

    def details(self) -> dict[str, Any]:
        return {"available_area": str(self.result.available_area)}


class InventoryInvariantError(RuntimeError):
    """Active allocations exceed the physical plot's total area."""

    def __init__(self, plot_id: Any, total_area, allocated_area):
        self.plot_id = plot_id
        self.total_area = total_area
        self.allocated_area = allocated_area
        super().__init__(
            f"Allocated area {allocated_area} exceeds total area {total_area} on physical plot {plot_id}"
        )


def _value(member) -> str:
    return member.value if hasattr(member, "value") else str(member)
