"""Initial loan schema: material stores, requests, debts, stock ledger, notifications

Revision ID: 20250301_initial
Revises:
Create Date: 2025-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20250301_initial"
down_revision = None
branch_labels = None
depends_on = None


MATERIAL_TABLES = (
    ("liquid_materials", "available_ml"),
    ("solid_materials", "available_g"),
    ("equipment_materials", "available_units"),
    ("lab_materials", "available_quantity"),
)


def upgrade():
    for table_name, stock_field in MATERIAL_TABLES:
        op.create_table(
            table_name,
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column(stock_field, sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.CheckConstraint(f"{stock_field} >= 0", name=f"ck_{table_name}_available_nonneg"),
            sa.PrimaryKeyConstraint("id"),
            sqlite_autoincrement=True,
        )
        with op.batch_alter_table(table_name, schema=None) as batch_op:
            batch_op.create_index(f"ix_{table_name}_name", ["name"], unique=False)

    op.create_table(
        "loan_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("folio", sa.String(8), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("requester_role", sa.String(32), nullable=False),
        sa.Column("requester_name", sa.String(255), nullable=True),
        sa.Column("approver_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
        sa.Column("pickup_date", sa.Date(), nullable=False),
        sa.Column("return_due_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("approved_by_id", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("delivered_by_id", sa.Integer(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_by_id", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'delivered', 'rejected', 'cancelled', 'expired_no_pickup')",
            name="ck_loan_requests_status_valid",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("loan_requests", schema=None) as batch_op:
        batch_op.create_index("ix_loan_requests_folio", ["folio"], unique=False)
        batch_op.create_index("ix_loan_requests_approver_id", ["approver_id"], unique=False)
        batch_op.create_index("ix_loan_requests_status_pickup", ["status", "pickup_date"], unique=False)
        batch_op.create_index("ix_loan_requests_requester_status", ["requester_id", "status"], unique=False)

    op.create_table(
        "request_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("requested_quantity", sa.Integer(), nullable=False),
        sa.Column("delivered_quantity", sa.Integer(), nullable=True),
        sa.CheckConstraint("requested_quantity > 0", name="ck_request_lines_requested_positive"),
        sa.CheckConstraint(
            "delivered_quantity IS NULL OR delivered_quantity >= 0",
            name="ck_request_lines_delivered_nonneg",
        ),
        sa.ForeignKeyConstraint(["request_id"], ["loan_requests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("request_lines", schema=None) as batch_op:
        batch_op.create_index("ix_request_lines_request_id", ["request_id"], unique=False)

    op.create_table(
        "debt_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.Integer(), nullable=False),
        sa.Column("request_line_id", sa.Integer(), nullable=False),
        sa.Column("requester_id", sa.Integer(), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("pending_quantity", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("pending_quantity >= 0", name="ck_debt_entries_pending_nonneg"),
        sa.ForeignKeyConstraint(["request_id"], ["loan_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["request_line_id"], ["request_lines.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_line_id", name="uq_debt_entries_request_line"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("debt_entries", schema=None) as batch_op:
        batch_op.create_index("ix_debt_entries_request_id", ["request_id"], unique=False)
        batch_op.create_index("ix_debt_entries_requester_due", ["requester_id", "due_date"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("material_id", sa.Integer(), nullable=False),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("request_id", sa.Integer(), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "movement_type IN ('opening', 'reservation', 'release', 'restoration', 'adjustment')",
            name="ck_stock_movements_type_valid",
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_request_id", ["request_id"], unique=False)
        batch_op.create_index(
            "ix_stock_movements_material", ["category", "material_id", "occurred_at"], unique=False
        )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(64), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_user_read", ["user_id", "is_read"], unique=False)


def downgrade():
    op.drop_table("notifications")
    op.drop_table("stock_movements")
    op.drop_table("debt_entries")
    op.drop_table("request_lines")
    op.drop_table("loan_requests")
    for table_name, _ in reversed(MATERIAL_TABLES):
        op.drop_table(table_name)
