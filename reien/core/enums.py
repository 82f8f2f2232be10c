from __future__ import annotations

from enum import Enum


class ContractStatus(str, Enum):
    DRAFT = "draft"
    RESERVED = "reserved"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    TERMINATED = "terminated"
    CANCELLED = "cancelled"
    TRANSFERRED = "transferred"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL_PAID = "partial_paid"
    PAID = "paid"
    OVERDUE = "overdue"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class ContractOperation(str, Enum):
    # User actions gated by contract status; never persisted.
    EDIT_BASIC_INFO = "edit_basic_info"
    EDIT_CUSTOMER = "edit_customer"
    REGISTER_PAYMENT = "register_payment"
    ISSUE_INVOICE = "issue_invoice"
    ADD_BURIED_PERSON = "add_buried_person"
    TRANSFER_OWNERSHIP = "transfer_ownership"
    REQUEST_CANCELLATION = "request_cancellation"
    DELETE = "delete"


class PhysicalPlotStatus(str, Enum):
    AVAILABLE = "available"
    PARTIALLY_SOLD = "partially_sold"
    SOLD_OUT = "sold_out"


class HistoryAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"


class StaffRole(str, Enum):
    VIEWER = "viewer"
    OPERATOR = "operator"
    MANAGER = "manager"
    ADMIN = "admin"
