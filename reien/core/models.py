from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Enum as SAEnum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from reien.core.enums import (
    ContractStatus,
    HistoryAction,
    PaymentStatus,
    PhysicalPlotStatus,
    StaffRole,
)
from reien.core.extensions import db

SECTION_RE = re.compile(r"^(.+)-\d+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Staff(UserMixin, db.Model):
    __tablename__ = "staff"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[str] = mapped_column(db.String(30), nullable=False, default=StaffRole.VIEWER.value)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @property
    def display_name(self) -> str:
        return self.name or self.email or f"Staff#{self.id}"


class Customer(db.Model):
    __tablename__ = "customer"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    name_kana: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    postal_code: Mapped[str] = mapped_column(db.String(10), nullable=False, default="")
    address: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    phone_number: Mapped[str] = mapped_column(db.String(30), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    contract_plots = relationship("ContractPlot", back_populates="customer")


class PhysicalPlot(db.Model):
    # Surveyed plot; status is derived from its live allocations.
    __tablename__ = "physical_plot"
    __table_args__ = (
        CheckConstraint("area_sqm > 0", name="ck_physical_plot_area_positive"),
        Index("ix_physical_plot_area_status", "area_name", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    plot_number: Mapped[str] = mapped_column(db.String(50), unique=True, nullable=False)
    area_name: Mapped[str] = mapped_column(db.String(50), nullable=False, default="")
    area_sqm: Mapped[Decimal] = mapped_column(db.Numeric(8, 2), nullable=False)
    status: Mapped[PhysicalPlotStatus] = mapped_column(
        SAEnum(
            PhysicalPlotStatus,
            name="physical_plot_status",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=PhysicalPlotStatus.AVAILABLE,
    )
    notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    contract_plots = relationship("ContractPlot", back_populates="physical_plot")

    @property
    def section(self) -> str:
        # "A-56" -> "A", "吉相-10" -> "吉相"
        match = SECTION_RE.match(self.plot_number or "")
        return match.group(1) if match else self.plot_number

    @validates("area_sqm")
    def validate_area_sqm(self, _key, value):
        if value is None:
            raise ValueError("Physical plot area is required")
        area = Decimal(str(value))
        if area <= 0:
            raise ValueError("Physical plot area must be greater than 0")
        if self.area_sqm is not None and self.id is not None and Decimal(self.area_sqm) != area:
            raise ValueError("Physical plot area cannot be changed once registered")
        return area


class ContractPlot(db.Model):
    # Allocation of part of a physical plot to one sales contract.
    __tablename__ = "contract_plot"
    __table_args__ = (
        CheckConstraint("contract_area_sqm > 0", name="ck_contract_plot_area_positive"),
        Index("ix_contract_plot_physical_deleted", "physical_plot_id", "deleted_at"),
        Index("ix_contract_plot_status", "contract_status", "payment_status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    physical_plot_id: Mapped[int] = mapped_column(ForeignKey("physical_plot.id"), nullable=False)
    customer_id: Mapped[int | None] = mapped_column(ForeignKey("customer.id"), nullable=True, index=True)
    contract_area_sqm: Mapped[Decimal] = mapped_column(db.Numeric(8, 2), nullable=False)
    location_description: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    contract_status: Mapped[ContractStatus] = mapped_column(
        SAEnum(ContractStatus, name="contract_status", values_callable=_enum_values),
        nullable=False,
        default=ContractStatus.DRAFT,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.UNPAID,
    )
    contract_date: Mapped[date | None] = mapped_column(nullable=True)
    price: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    transferred_from_id: Mapped[int | None] = mapped_column(ForeignKey("contract_plot.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    physical_plot = relationship("PhysicalPlot", back_populates="contract_plots")
    customer = relationship("Customer", back_populates="contract_plots")
    transferred_from = relationship("ContractPlot", remote_side=[id], uselist=False)
    buried_persons = relationship("BuriedPerson", back_populates="contract_plot", cascade="all, delete-orphan")
    invoices = relationship("Invoice", back_populates="contract_plot", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="contract_plot", cascade="all, delete-orphan")

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class BuriedPerson(db.Model):
    __tablename__ = "buried_person"

    id: Mapped[int] = mapped_column(primary_key=True)
    contract_plot_id: Mapped[int] = mapped_column(ForeignKey("contract_plot.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    name_kana: Mapped[str] = mapped_column(db.String(120), nullable=False, default="")
    burial_date: Mapped[date | None] = mapped_column(nullable=True)
    notes: Mapped[str] = mapped_column(db.String(500), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    contract_plot = relationship("ContractPlot", back_populates="buried_persons")


class Invoice(db.Model):
    __tablename__ = "invoice"

    id: Mapped[int] = mapped_column(primary_key=True)
    contract_plot_id: Mapped[int] = mapped_column(ForeignKey("contract_plot.id"), nullable=False, index=True)
    invoice_number: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    issued_on: Mapped[date] = mapped_column(nullable=False)
    due_on: Mapped[date | None] = mapped_column(nullable=True)
    staff_id: Mapped[int | None] = mapped_column(ForeignKey("staff.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    contract_plot = relationship("ContractPlot", back_populates="invoices")
    staff = relationship("Staff")


class Payment(db.Model):
    __tablename__ = "payment"

    id: Mapped[int] = mapped_column(primary_key=True)
    contract_plot_id: Mapped[int] = mapped_column(ForeignKey("contract_plot.id"), nullable=False, index=True)
    receipt_number: Mapped[str] = mapped_column(db.String(20), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False)
    paid_on: Mapped[date] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(db.String(30), nullable=False, default="bank_transfer")
    staff_id: Mapped[int | None] = mapped_column(ForeignKey("staff.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    contract_plot = relationship("ContractPlot", back_populates="payments")
    staff = relationship("Staff")


class History(db.Model):
    # Audit trail of plot, contract and customer changes.
    __tablename__ = "history"
    __table_args__ = (
        Index("ix_history_physical_plot_created", "physical_plot_id", "created_at"),
        Index("ix_history_entity", "entity_type", "entity_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    entity_type: Mapped[str] = mapped_column(db.String(30), nullable=False)
    entity_id: Mapped[int] = mapped_column(nullable=False)
    physical_plot_id: Mapped[int | None] = mapped_column(ForeignKey("physical_plot.id"), nullable=True)
    contract_plot_id: Mapped[int | None] = mapped_column(ForeignKey("contract_plot.id"), nullable=True)
    action_type: Mapped[HistoryAction] = mapped_column(
        SAEnum(HistoryAction, name="history_action"),
        nullable=False,
    )
    before_record: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    after_record: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    changed_fields: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)
    changed_by: Mapped[str] = mapped_column(db.String(255), nullable=False, default="system")
    change_reason: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    ip_address: Mapped[str] = mapped_column(db.String(64), nullable=False, default="unknown")
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


def seed_demo_data(session) -> None:
    admin = Staff(
        email="admin@reien.local",
        name="管理者",
        password_hash=generate_password_hash("admin123"),
        role=StaffRole.ADMIN.value,
    )
    operator = Staff(
        email="operator@reien.local",
        name="受付担当",
        password_hash=generate_password_hash("operator123"),
        role=StaffRole.OPERATOR.value,
    )
    viewer = Staff(
        email="viewer@reien.local",
        name="閲覧者",
        password_hash=generate_password_hash("viewer123"),
        role=StaffRole.VIEWER.value,
    )
    session.add_all([admin, operator, viewer])

    yamada = Customer(
        name="山田 太郎",
        name_kana="ヤマダ タロウ",
        postal_code="100-0001",
        address="東京都千代田区千代田1-1",
        phone_number="03-0000-0001",
    )
    suzuki = Customer(
        name="鈴木 花子",
        name_kana="スズキ ハナコ",
        postal_code="150-0001",
        address="東京都渋谷区神宮前1-1",
        phone_number="03-0000-0002",
    )
    tanaka = Customer(
        name="田中 一郎",
        name_kana="タナカ イチロウ",
        postal_code="220-0001",
        address="神奈川県横浜市西区1-1",
        phone_number="045-000-0003",
    )
    session.add_all([yamada, suzuki, tanaka])

    a1 = PhysicalPlot(plot_number="A-1", area_name="1期", area_sqm=Decimal("3.6"))
    a2 = PhysicalPlot(plot_number="A-2", area_name="1期", area_sqm=Decimal("3.6"))
    a3 = PhysicalPlot(plot_number="A-3", area_name="1期", area_sqm=Decimal("3.6"))
    b1 = PhysicalPlot(plot_number="B-1", area_name="2期", area_sqm=Decimal("1.8"))
    session.add_all([a1, a2, a3, b1])
    session.flush()

    session.add_all(
        [
            ContractPlot(
                physical_plot_id=a2.id,
                customer_id=yamada.id,
                contract_area_sqm=Decimal("1.8"),
                location_description="左半分",
                contract_status=ContractStatus.ACTIVE,
                payment_status=PaymentStatus.PAID,
                contract_date=date(2023, 4, 1),
                price=Decimal("900000"),
            ),
            ContractPlot(
                physical_plot_id=a3.id,
                customer_id=suzuki.id,
                contract_area_sqm=Decimal("1.8"),
                location_description="左半分",
                contract_status=ContractStatus.ACTIVE,
                payment_status=PaymentStatus.PARTIAL_PAID,
                contract_date=date(2023, 6, 1),
                price=Decimal("900000"),
            ),
            ContractPlot(
                physical_plot_id=a3.id,
                customer_id=tanaka.id,
                contract_area_sqm=Decimal("1.8"),
                location_description="右半分",
                contract_status=ContractStatus.RESERVED,
                payment_status=PaymentStatus.UNPAID,
                contract_date=date(2024, 1, 15),
                price=Decimal("900000"),
            ),
        ]
    )
    session.flush()

    from reien.plots.inventory import update_physical_plot_status

    for plot in (a1, a2, a3, b1):
        update_physical_plot_status(plot.id)
    session.commit()
