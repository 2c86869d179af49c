"""initial payment schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TRANSACTION_STATUSES = (
    "CREATED",
    "COLLECTION_PENDING",
    "COLLECTION_FAILED",
    "COLLECTED",
    "DISBURSEMENT_PENDING",
    "DISBURSEMENT_FAILED",
    "SETTLED",
    "REVERSAL_PENDING",
    "REVERSED",
)
PAYMENT_LEGS = ("COLLECTION", "DISBURSEMENT", "REVERSAL")
CALLBACK_OUTCOMES = ("SUCCESS", "FAILURE")
REVIEW_KINDS = (
    "AMOUNT_MISMATCH",
    "UNKNOWN_TRANSACTION",
    "CONFLICTING_CALLBACK",
    "REVERSAL_FAILED",
    "REVERSAL_STALLED",
    "STUCK_TRANSACTION",
)


def upgrade() -> None:
    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.Uuid(), nullable=False, unique=True),
        sa.Column("payer_reference", sa.String(64), nullable=False),
        sa.Column("payee_reference", sa.String(64), nullable=False),
        sa.Column("gross_amount", sa.BigInteger(), nullable=False),
        sa.Column("commission_amount", sa.BigInteger(), nullable=False),
        sa.Column("net_amount", sa.BigInteger(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                *TRANSACTION_STATUSES,
                name="transaction_status_enum",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("collection_request_id", sa.String(100), unique=True),
        sa.Column("disbursement_request_id", sa.String(100), unique=True),
        sa.Column("reversal_request_id", sa.String(100), unique=True),
        sa.Column("disbursement_claimed_at", sa.DateTime()),
        sa.Column("reversal_claimed_at", sa.DateTime()),
        sa.Column("is_frozen", sa.Boolean(), nullable=False),
        sa.Column("failure_reason", sa.String(500)),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("last_transition_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_payment_transactions_payer_reference",
        "payment_transactions",
        ["payer_reference"],
    )
    op.create_index(
        "ix_payment_transactions_payee_reference",
        "payment_transactions",
        ["payee_reference"],
    )
    op.create_index(
        "ix_payment_transactions_status", "payment_transactions", ["status"]
    )
    op.create_index(
        "ix_payment_transactions_last_transition_at",
        "payment_transactions",
        ["last_transition_at"],
    )

    op.create_table(
        "transaction_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("payment_transactions.id"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column(
            "from_status",
            sa.Enum(*TRANSACTION_STATUSES, name="transaction_status_enum"),
        ),
        sa.Column(
            "to_status",
            sa.Enum(*TRANSACTION_STATUSES, name="transaction_status_enum"),
            nullable=False,
        ),
        sa.Column("reason", sa.String(500), nullable=False),
        sa.Column("trigger_leg", sa.Enum(*PAYMENT_LEGS, name="payment_leg_enum")),
        sa.Column(
            "trigger_outcome",
            sa.Enum(*CALLBACK_OUTCOMES, name="callback_outcome_enum"),
        ),
        sa.Column("trigger_request_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint(
            "transaction_id", "sequence", name="uq_history_transaction_sequence"
        ),
    )
    op.create_index(
        "ix_transaction_status_history_transaction_id",
        "transaction_status_history",
        ["transaction_id"],
    )

    op.create_table(
        "review_queue",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("payment_transactions.id"),
        ),
        sa.Column(
            "kind",
            sa.Enum(*REVIEW_KINDS, name="review_kind_enum", create_constraint=True),
            nullable=False,
        ),
        sa.Column("request_id", sa.String(100)),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("resolved_at", sa.DateTime()),
        sa.Column("resolution", sa.String(500)),
    )
    op.create_index(
        "ix_review_queue_transaction_id", "review_queue", ["transaction_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_review_queue_transaction_id", table_name="review_queue")
    op.drop_table("review_queue")
    op.drop_index(
        "ix_transaction_status_history_transaction_id",
        table_name="transaction_status_history",
    )
    op.drop_table("transaction_status_history")
    op.drop_index(
        "ix_payment_transactions_last_transition_at",
        table_name="payment_transactions",
    )
    op.drop_index(
        "ix_payment_transactions_status", table_name="payment_transactions"
    )
    op.drop_index(
        "ix_payment_transactions_payee_reference",
        table_name="payment_transactions",
    )
    op.drop_index(
        "ix_payment_transactions_payer_reference",
        table_name="payment_transactions",
    )
    op.drop_table("payment_transactions")
    sa.Enum(name="review_kind_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="callback_outcome_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="payment_leg_enum").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transaction_status_enum").drop(op.get_bind(), checkfirst=True)
