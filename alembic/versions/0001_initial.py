"""initial schema: tenants, master data, factory accounts, orders, payments

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19T09:00:00Z
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(12, 2)


def _base(*, org: bool = True):
    cols = [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    ]
    if org:
        cols.append(sa.Column("org_id", sa.String(length=64), nullable=False))
    return cols


def upgrade():
    op.create_table(
        "organizations",
        *_base(org=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_organizations_org_id", "organizations", ["org_id"], unique=True)

    op.create_table(
        "users",
        *_base(),
        sa.Column("username", sa.String(length=64), nullable=False),
        sa.Column("real_name", sa.String(length=64), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("role_id", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("uq_users_org_username", "users", ["org_id", "username"], unique=True)

    for name, code_len in (("products", 64), ("colors", 32), ("sizes", 32)):
        extra = []
        if name == "products":
            extra = [
                sa.Column("name", sa.String(length=128), nullable=False, server_default=""),
                sa.Column("image", sa.String(length=512), nullable=True),
            ]
        else:
            extra = [sa.Column("name", sa.String(length=64), nullable=False, server_default="")]
        op.create_table(
            name,
            *_base(),
            sa.Column("code", sa.String(length=code_len), nullable=False),
            *extra,
            sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
        )
        op.create_index(f"ix_{name}_org_id", name, ["org_id"])
    op.create_index("ix_products_org_code", "products", ["org_id", "code"])

    op.create_table(
        "processes",
        *_base(),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_processes_org_id", "processes", ["org_id"])

    op.create_table(
        "factories",
        *_base(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("contact_name", sa.String(length=64), nullable=True),
        sa.Column("contact_phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.String(length=256), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("processes", sa.JSON(), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("balance", MONEY, nullable=False, server_default="0"),
        sa.Column("debt", MONEY, nullable=False, server_default="0"),
    )
    op.create_index("uq_factories_org_name", "factories", ["org_id", "name"], unique=True)

    op.create_table(
        "factory_ledger_entries",
        *_base(),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("entry_type", sa.String(length=32), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("ref_no", sa.String(length=32), nullable=False),
        sa.Column("fee", MONEY, nullable=False, server_default="0"),
        sa.Column("payment", MONEY, nullable=False, server_default="0"),
        sa.Column("balance_before", MONEY, nullable=False),
        sa.Column("balance_after", MONEY, nullable=False),
        sa.Column("debt_before", MONEY, nullable=False),
        sa.Column("debt_after", MONEY, nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
    )
    op.create_index("ix_ledger_factory_time", "factory_ledger_entries", ["factory_id", "created_at"])
    op.create_index("ix_factory_ledger_entries_ref_no", "factory_ledger_entries", ["ref_no"])

    for order_table, item_table, fk, receive in (
        ("send_orders", "send_order_items", "send_order_id", False),
        ("receive_orders", "receive_order_items", "receive_order_id", True),
    ):
        money_cols = []
        if receive:
            money_cols = [
                sa.Column("total_fee", MONEY, nullable=False, server_default="0"),
                sa.Column("payment_amount", MONEY, nullable=False, server_default="0"),
                sa.Column("payment_method", sa.String(length=32), nullable=True),
            ]
        op.create_table(
            order_table,
            *_base(),
            sa.Column("order_no", sa.String(length=32), nullable=False),
            sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
            sa.Column("process_id", sa.Integer(), sa.ForeignKey("processes.id"), nullable=False),
            sa.Column("total_weight", MONEY, nullable=False, server_default="0"),
            sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
            *money_cols,
            sa.Column("remark", sa.Text(), nullable=True),
            sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_by", sa.Integer(), nullable=True),
        )
        op.create_index(f"uq_{order_table}_org_no", order_table, ["org_id", "order_no"], unique=True)
        op.create_index(f"ix_{order_table}_factory_id", order_table, ["factory_id"])
        op.create_index(f"ix_{order_table}_created_at", order_table, ["created_at"])

        op.create_table(
            item_table,
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(fk, sa.Integer(), sa.ForeignKey(f"{order_table}.id"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=True),
            sa.Column("product_no", sa.String(length=64), nullable=True),
            sa.Column("color_id", sa.Integer(), nullable=True),
            sa.Column("color_code", sa.String(length=32), nullable=True),
            sa.Column("size_id", sa.Integer(), nullable=True),
            sa.Column("size_code", sa.String(length=32), nullable=True),
            sa.Column("weight", MONEY, nullable=False, server_default="0"),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
            *([sa.Column("fee", MONEY, nullable=False, server_default="0")] if receive else []),
        )
        op.create_index(f"ix_{item_table}_{fk}", item_table, [fk])

    op.create_table(
        "factory_payments",
        *_base(),
        sa.Column("payment_no", sa.String(length=32), nullable=False),
        sa.Column("factory_id", sa.Integer(), sa.ForeignKey("factories.id"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("image_urls", sa.JSON(), nullable=False),
        sa.Column("status", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.Integer(), nullable=True),
    )
    op.create_index("uq_factory_payments_org_no", "factory_payments", ["org_id", "payment_no"], unique=True)
    op.create_index("ix_factory_payments_factory_id", "factory_payments", ["factory_id"])

    op.create_table(
        "doc_counters",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("prefix", sa.String(length=8), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("org_id", "prefix", name="uq_doc_counters_org_prefix"),
    )

    op.create_table(
        "sys_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=True),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=256), nullable=True),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payload", sa.JSON(), nullable=False),
    )
    op.create_index("ix_audit_org_time", "sys_audit_log", ["org_id", "created_at"])
    op.create_index("ix_sys_audit_log_action", "sys_audit_log", ["action"])


def downgrade():
    for table in (
        "sys_audit_log",
        "doc_counters",
        "factory_payments",
        "receive_order_items",
        "receive_orders",
        "send_order_items",
        "send_orders",
        "factory_ledger_entries",
        "factories",
        "processes",
        "sizes",
        "colors",
        "products",
        "users",
        "organizations",
    ):
        op.drop_table(table)
