"""parked callbacks

Revision ID: 002
Revises: 001
Create Date: 2026-10-20 10:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Both enum types were created by revision 001
PAYMENT_LEGS = ("COLLECTION", "DISBURSEMENT", "REVERSAL")
CALLBACK_OUTCOMES = ("SUCCESS", "FAILURE")


def upgrade() -> None:
    op.create_table(
        "parked_callbacks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "leg",
            postgresql.ENUM(
                *PAYMENT_LEGS, name="payment_leg_enum", create_type=False
            ),
            nullable=False,
        ),
        sa.Column("request_id", sa.String(100), nullable=False),
        sa.Column(
            "outcome",
            postgresql.ENUM(
                *CALLBACK_OUTCOMES, name="callback_outcome_enum", create_type=False
            ),
            nullable=False,
        ),
        sa.Column("reported_amount", sa.BigInteger(), nullable=False),
        sa.Column("failure_reason", sa.String(500)),
        sa.Column("received_at", sa.DateTime(), nullable=False),
        sa.Column("replayed_at", sa.DateTime()),
        sa.Column("replay_result", sa.String(30)),
    )
    op.create_index(
        "ix_parked_callbacks_request_id", "parked_callbacks", ["request_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_parked_callbacks_request_id", table_name="parked_callbacks")
    op.drop_table("parked_callbacks")
