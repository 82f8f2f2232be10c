"""staff, customers, physical and contract plots, billing and history

Revision ID: 4f2a9c1d7e30
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4f2a9c1d7e30"
down_revision = None
branch_labels = None
depends_on = None

PLOT_STATUSES = ("available", "partially_sold", "sold_out")
CONTRACT_STATUSES = ("draft", "reserved", "active", "suspended", "terminated", "cancelled", "transferred")
PAYMENT_STATUSES = ("unpaid", "partial_paid", "paid", "overdue", "refunded", "cancelled")
HISTORY_ACTIONS = ("CREATE", "UPDATE", "DELETE", "STATUS_CHANGE")


def upgrade():
    op.create_table(
        "staff",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=30), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("name_kana", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("postal_code", sa.String(length=10), nullable=False, server_default=""),
        sa.Column("address", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("phone_number", sa.String(length=30), nullable=False, server_default=""),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_table(
        "physical_plot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("plot_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("area_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("area_sqm", sa.Numeric(8, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*PLOT_STATUSES, name="physical_plot_status"),
            nullable=False,
            server_default="available",
        ),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("area_sqm > 0", name="ck_physical_plot_area_positive"),
    )
    op.create_index("ix_physical_plot_area_status", "physical_plot", ["area_name", "status"])

    op.create_table(
        "contract_plot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("physical_plot_id", sa.Integer(), sa.ForeignKey("physical_plot.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customer.id"), nullable=True),
        sa.Column("contract_area_sqm", sa.Numeric(8, 2), nullable=False),
        sa.Column("location_description", sa.String(length=100), nullable=True),
        sa.Column(
            "contract_status",
            sa.Enum(*CONTRACT_STATUSES, name="contract_status"),
            nullable=False,
            server_default="draft",
        ),
        sa.Column(
            "payment_status",
            sa.Enum(*PAYMENT_STATUSES, name="payment_status"),
            nullable=False,
            server_default="unpaid",
        ),
        sa.Column("contract_date", sa.Date(), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("transferred_from_id", sa.Integer(), sa.ForeignKey("contract_plot.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("contract_area_sqm > 0", name="ck_contract_plot_area_positive"),
    )
    op.create_index("ix_contract_plot_customer_id", "contract_plot", ["customer_id"])
    op.create_index("ix_contract_plot_physical_deleted", "contract_plot", ["physical_plot_id", "deleted_at"])
    op.create_index("ix_contract_plot_status", "contract_plot", ["contract_status", "payment_status"])

    op.create_table(
        "buried_person",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("contract_plot_id", sa.Integer(), sa.ForeignKey("contract_plot.id"), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("name_kana", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("burial_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_buried_person_contract_plot_id", "buried_person", ["contract_plot_id"])

    op.create_table(
        "invoice",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("contract_plot_id", sa.Integer(), sa.ForeignKey("contract_plot.id"), nullable=False),
        sa.Column("invoice_number", sa.String(length=20), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("issued_on", sa.Date(), nullable=False),
        sa.Column("due_on", sa.Date(), nullable=True),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_invoice_contract_plot_id", "invoice", ["contract_plot_id"])

    op.create_table(
        "payment",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("contract_plot_id", sa.Integer(), sa.ForeignKey("contract_plot.id"), nullable=False),
        sa.Column("receipt_number", sa.String(length=20), nullable=False, unique=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_on", sa.Date(), nullable=False),
        sa.Column("method", sa.String(length=30), nullable=False, server_default="bank_transfer"),
        sa.Column("staff_id", sa.Integer(), sa.ForeignKey("staff.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_payment_contract_plot_id", "payment", ["contract_plot_id"])

    op.create_table(
        "history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", sa.String(length=30), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("physical_plot_id", sa.Integer(), sa.ForeignKey("physical_plot.id"), nullable=True),
        sa.Column("contract_plot_id", sa.Integer(), sa.ForeignKey("contract_plot.id"), nullable=True),
        sa.Column("action_type", sa.Enum(*HISTORY_ACTIONS, name="history_action"), nullable=False),
        sa.Column("before_record", sa.JSON(), nullable=True),
        sa.Column("after_record", sa.JSON(), nullable=True),
        sa.Column("changed_fields", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.String(length=255), nullable=False, server_default="system"),
        sa.Column("change_reason", sa.String(length=500), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=False, server_default="unknown"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_history_physical_plot_created", "history", ["physical_plot_id", "created_at"])
    op.create_index("ix_history_entity", "history", ["entity_type", "entity_id"])


def downgrade():
    op.drop_index("ix_history_entity", table_name="history")
    op.drop_index("ix_history_physical_plot_created", table_name="history")
    op.drop_table("history")
    op.drop_index("ix_payment_contract_plot_id", table_name="payment")
    op.drop_table("payment")
    op.drop_index("ix_invoice_contract_plot_id", table_name="invoice")
    op.drop_table("invoice")
    op.drop_index("ix_buried_person_contract_plot_id", table_name="buried_person")
    op.drop_table("buried_person")
    op.drop_index("ix_contract_plot_status", table_name="contract_plot")
    op.drop_index("ix_contract_plot_physical_deleted", table_name="contract_plot")
    op.drop_index("ix_contract_plot_customer_id", table_name="contract_plot")
    op.drop_table("contract_plot")
    op.drop_index("ix_physical_plot_area_status", table_name="physical_plot")
    op.drop_table("physical_plot")
    op.drop_table("customer")
    op.drop_table("staff")
