"""expenses and budgets

Revision ID: 202410190900
Revises:
Create Date: 2024-10-19 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "202410190900"
down_revision = None
branch_labels = None
depends_on = None

CATEGORY_VALUES = (
    "Alimentação",
    "Transporte",
    "Moradia",
    "Contas Fixas",
    "Lazer",
    "Saúde",
    "Educação",
    "Outros",
)


def upgrade() -> None:
    op.create_table(
        "expenses",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "category",
            sa.Enum(*CATEGORY_VALUES, name="expensecategory"),
            nullable=False,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column(
            "isRecurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_category", "expenses", ["category"])
    op.create_index("ix_expenses_date", "expenses", ["date"])

    # the expensecategory type already exists once expenses is created
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "category",
            postgresql.ENUM(
                *CATEGORY_VALUES, name="expensecategory", create_type=False
            ),
            nullable=False,
        ),
        sa.Column("monthly_limit", sa.Numeric(10, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("category", name="uq_budgets_category"),
        sa.CheckConstraint(
            "monthly_limit >= 0", name="ck_budgets_limit_non_negative"
        ),
    )


def downgrade() -> None:
    op.drop_table("budgets")
    op.drop_index("ix_expenses_date", table_name="expenses")
    op.drop_index("ix_expenses_category", table_name="expenses")
    op.drop_table("expenses")
    sa.Enum(name="expensecategory").drop(op.get_bind(), checkfirst=True)
