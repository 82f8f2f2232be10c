"""Contract lifecycle rules.

Static tables decide which status transitions, operations and payment
statuses are legal for a contract in a given status. Nothing here touches the
database or holds per-contract state: ``can_*``/``is_*`` answer a question,
``validate_*`` enforce it by raising, ``get_*`` expose a copy of the table
row for UI gating.
"""

from __future__ import annotations

from reien.core.enums import ContractOperation, ContractStatus, PaymentStatus
from reien.core.errors import (
    ContractOperationNotAllowedError,
    ContractStatusTransitionError,
    PaymentStatusMismatchError,
)

ALLOWED_TRANSITIONS: dict[ContractStatus, tuple[ContractStatus, ...]] = {
    ContractStatus.DRAFT: (ContractStatus.RESERVED, ContractStatus.CANCELLED),
    ContractStatus.RESERVED: (ContractStatus.ACTIVE, ContractStatus.CANCELLED),
    ContractStatus.ACTIVE: (
        ContractStatus.SUSPENDED,
        ContractStatus.TERMINATED,
        ContractStatus.CANCELLED,
        ContractStatus.TRANSFERRED,
    ),
    ContractStatus.SUSPENDED: (ContractStatus.ACTIVE, ContractStatus.CANCELLED),
    ContractStatus.TERMINATED: (),
    ContractStatus.CANCELLED: (),
    ContractStatus.TRANSFERRED: (),
}

ALLOWED_OPERATIONS: dict[ContractStatus, tuple[ContractOperation, ...]] = {
    ContractStatus.DRAFT: (
        ContractOperation.EDIT_BASIC_INFO,
        ContractOperation.EDIT_CUSTOMER,
        ContractOperation.DELETE,
    ),
    ContractStatus.RESERVED: (
        ContractOperation.EDIT_BASIC_INFO,
        ContractOperation.EDIT_CUSTOMER,
        ContractOperation.REGISTER_PAYMENT,
        ContractOperation.ISSUE_INVOICE,
        ContractOperation.REQUEST_CANCELLATION,
    ),
    ContractStatus.ACTIVE: (
        ContractOperation.EDIT_BASIC_INFO,
        ContractOperation.EDIT_CUSTOMER,
        ContractOperation.REGISTER_PAYMENT,
        ContractOperation.ISSUE_INVOICE,
        ContractOperation.ADD_BURIED_PERSON,
        ContractOperation.TRANSFER_OWNERSHIP,
        ContractOperation.REQUEST_CANCELLATION,
    ),
    ContractStatus.SUSPENDED: (
        ContractOperation.EDIT_BASIC_INFO,
        ContractOperation.REGISTER_PAYMENT,
        ContractOperation.ISSUE_INVOICE,
        ContractOperation.REQUEST_CANCELLATION,
    ),
    ContractStatus.TERMINATED: (),
    ContractStatus.CANCELLED: (),
    ContractStatus.TRANSFERRED: (),
}

ALLOWED_PAYMENT_STATUSES: dict[ContractStatus, tuple[PaymentStatus, ...]] = {
    ContractStatus.DRAFT: (PaymentStatus.UNPAID,),
    ContractStatus.RESERVED: (PaymentStatus.UNPAID, PaymentStatus.PARTIAL_PAID),
    ContractStatus.ACTIVE: (PaymentStatus.UNPAID, PaymentStatus.PARTIAL_PAID, PaymentStatus.PAID),
    ContractStatus.SUSPENDED: (PaymentStatus.OVERDUE,),
    ContractStatus.TERMINATED: (PaymentStatus.PAID, PaymentStatus.REFUNDED),
    ContractStatus.CANCELLED: (PaymentStatus.REFUNDED, PaymentStatus.CANCELLED),
    ContractStatus.TRANSFERRED: (PaymentStatus.PAID,),
}

FINAL_STATUSES = frozenset(
    {ContractStatus.TERMINATED, ContractStatus.CANCELLED, ContractStatus.TRANSFERRED}
)

STATUS_LABELS: dict[ContractStatus, str] = {
    ContractStatus.DRAFT: "下書き",
    ContractStatus.RESERVED: "予約済み",
    ContractStatus.ACTIVE: "有効",
    ContractStatus.SUSPENDED: "停止中",
    ContractStatus.TERMINATED: "終了",
    ContractStatus.CANCELLED: "解約",
    ContractStatus.TRANSFERRED: "継承済み",
}

STATUS_DESCRIPTIONS: dict[ContractStatus, str] = {
    ContractStatus.DRAFT: "契約情報入力中、未確定の状態",
    ContractStatus.RESERVED: "区画予約完了、本契約締結待ち",
    ContractStatus.ACTIVE: "本契約締結済み、利用可能な状態",
    ContractStatus.SUSPENDED: "支払い延滞等により一時停止中",
    ContractStatus.TERMINATED: "契約期間満了による正常終了",
    ContractStatus.CANCELLED: "契約者都合による中途解約",
    ContractStatus.TRANSFERRED: "名義変更により別契約へ移行済み",
}

PAYMENT_STATUS_LABELS: dict[PaymentStatus, str] = {
    PaymentStatus.UNPAID: "未払い",
    PaymentStatus.PARTIAL_PAID: "一部入金",
    PaymentStatus.PAID: "支払済",
    PaymentStatus.OVERDUE: "延滞",
    PaymentStatus.REFUNDED: "返金済",
    PaymentStatus.CANCELLED: "取消",
}


def _ensure_complete(table: dict, enum_cls, name: str) -> None:
    missing = [member.value for member in enum_cls if member not in table]
    if missing:
        raise RuntimeError(f"{name} has no entry for: {', '.join(missing)}")


_ensure_complete(ALLOWED_TRANSITIONS, ContractStatus, "ALLOWED_TRANSITIONS")
_ensure_complete(ALLOWED_OPERATIONS, ContractStatus, "ALLOWED_OPERATIONS")
_ensure_complete(ALLOWED_PAYMENT_STATUSES, ContractStatus, "ALLOWED_PAYMENT_STATUSES")
_ensure_complete(STATUS_LABELS, ContractStatus, "STATUS_LABELS")
_ensure_complete(STATUS_DESCRIPTIONS, ContractStatus, "STATUS_DESCRIPTIONS")
_ensure_complete(PAYMENT_STATUS_LABELS, PaymentStatus, "PAYMENT_STATUS_LABELS")


def _status(value: ContractStatus | str) -> ContractStatus:
    return value if isinstance(value, ContractStatus) else ContractStatus(value)


def _operation(value: ContractOperation | str) -> ContractOperation:
    return value if isinstance(value, ContractOperation) else ContractOperation(value)


def _payment(value: PaymentStatus | str) -> PaymentStatus:
    return value if isinstance(value, PaymentStatus) else PaymentStatus(value)


def can_transition(from_status: ContractStatus | str, to_status: ContractStatus | str) -> bool:
    return _status(to_status) in ALLOWED_TRANSITIONS[_status(from_status)]


def validate_transition(from_status: ContractStatus | str, to_status: ContractStatus | str) -> None:
    if not can_transition(from_status, to_status):
        raise ContractStatusTransitionError(_status(from_status), _status(to_status))


def get_allowed_transitions(from_status: ContractStatus | str) -> list[ContractStatus]:
    return list(ALLOWED_TRANSITIONS[_status(from_status)])


def can_perform_operation(status: ContractStatus | str, operation: ContractOperation | str) -> bool:
    return _operation(operation) in ALLOWED_OPERATIONS[_status(status)]


def validate_operation(status: ContractStatus | str, operation: ContractOperation | str) -> None:
    if not can_perform_operation(status, operation):
        raise ContractOperationNotAllowedError(_status(status), _operation(operation))


def get_allowed_operations(status: ContractStatus | str) -> list[ContractOperation]:
    return list(ALLOWED_OPERATIONS[_status(status)])


def is_payment_status_valid(
    contract_status: ContractStatus | str, payment_status: PaymentStatus | str
) -> bool:
    return _payment(payment_status) in ALLOWED_PAYMENT_STATUSES[_status(contract_status)]


def validate_payment_status(
    contract_status: ContractStatus | str, payment_status: PaymentStatus | str
) -> None:
    if not is_payment_status_valid(contract_status, payment_status):
        raise PaymentStatusMismatchError(_status(contract_status), _payment(payment_status))


def get_allowed_payment_statuses(contract_status: ContractStatus | str) -> list[PaymentStatus]:
    return list(ALLOWED_PAYMENT_STATUSES[_status(contract_status)])


def is_final_status(status: ContractStatus | str) -> bool:
    return _status(status) in FINAL_STATUSES


def is_active_status(status: ContractStatus | str) -> bool:
    return _status(status) == ContractStatus.ACTIVE


def is_editable(status: ContractStatus | str) -> bool:
    return not is_final_status(status)


def get_status_label(status: ContractStatus | str) -> str:
    return STATUS_LABELS[_status(status)]


def get_status_description(status: ContractStatus | str) -> str:
    return STATUS_DESCRIPTIONS[_status(status)]


def get_payment_status_label(payment_status: PaymentStatus | str) -> str:
    return PAYMENT_STATUS_LABELS[_payment(payment_status)]


def contract_permissions(status: ContractStatus | str) -> dict[str, object]:
    """Everything a UI needs to gate actions for a contract in ``status``."""
    current = _status(status)
    return {
        "status": current.value,
        "label": get_status_label(current),
        "description": get_status_description(current),
        "is_final": is_final_status(current),
        "is_editable": is_editable(current),
        "allowed_transitions": [
            {"status": target.value, "label": get_status_label(target)}
            for target in get_allowed_transitions(current)
        ],
        "allowed_operations": [operation.value for operation in get_allowed_operations(current)],
        "allowed_payment_statuses": [
            {"status": payment.value, "label": get_payment_status_label(payment)}
            for payment in get_allowed_payment_statuses(current)
        ],
    }
