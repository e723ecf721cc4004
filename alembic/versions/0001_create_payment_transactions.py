"""create payment transactions table

Revision ID: 0001_create_payment_transactions
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_create_payment_transactions"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payment_transactions (
          checkout_request_id text PRIMARY KEY,
          merchant_request_id text NOT NULL DEFAULT '',
          phone text NOT NULL,
          email text NOT NULL,
          amount integer NOT NULL CHECK (amount > 0),
          description text NULL,
          status text NOT NULL DEFAULT 'PENDING',
          result_code integer NULL,
          result_desc text NULL,
          receipt_number text NULL,
          paid_amount integer NULL,
          paid_phone text NULL,
          transaction_date text NULL,
          simulated boolean NOT NULL DEFAULT false,
          created_at timestamptz NOT NULL DEFAULT now(),
          updated_at timestamptz NOT NULL DEFAULT now(),
          CONSTRAINT payment_transactions_status_chk
            CHECK (status IN ('PENDING', 'SUCCESS', 'FAILED', 'EXPIRED')),
          CONSTRAINT payment_transactions_receipt_only_on_success_chk
            CHECK (receipt_number IS NULL OR status = 'SUCCESS')
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_payment_transactions_status_created
          ON app.payment_transactions (status, created_at);
        """
    )


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS app.ix_payment_transactions_status_created;")
    op.execute("DROP TABLE IF EXISTS app.payment_transactions;")
