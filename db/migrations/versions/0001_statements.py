from __future__ import annotations

from alembic import op

revision = "0001_statements"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")

    # fastapi-users table (SQLAlchemyBaseUserTableUUID layout)
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(320) UNIQUE NOT NULL,
            hashed_password VARCHAR(1024) NOT NULL,
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            is_superuser BOOLEAN NOT NULL DEFAULT FALSE,
            is_verified BOOLEAN NOT NULL DEFAULT FALSE
        );
        """
    )
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS bank_accounts (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            financial_institution TEXT NOT NULL,
            account_type VARCHAR(32) NOT NULL DEFAULT 'OTHER',
            last_four_digits VARCHAR(4) NOT NULL,
            balance NUMERIC(18,2),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_bank_accounts_user_institution_last4
                UNIQUE (user_id, financial_institution, last_four_digits)
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_bank_accounts_user_id ON bank_accounts (user_id);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS statements (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            filename TEXT NOT NULL,
            file_type VARCHAR(128),
            storage_url TEXT,
            storage_bucket VARCHAR(128),
            storage_path TEXT,
            status VARCHAR(32) NOT NULL DEFAULT 'UPLOADED',
            error_message TEXT,
            account_id UUID REFERENCES bank_accounts(id) ON DELETE SET NULL,
            upload_timestamp TIMESTAMPTZ NOT NULL DEFAULT now(),
            processed_timestamp TIMESTAMPTZ,
            period_start TIMESTAMPTZ,
            period_end TIMESTAMPTZ,
            CONSTRAINT ck_statements_status
                CHECK (status IN ('UPLOADED', 'PROCESSING', 'REVIEW_NEEDED', 'COMPLETED', 'FAILED'))
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS idx_statements_user_uploaded ON statements (user_id, upload_timestamp DESC);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS statement_transactions (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            statement_id UUID NOT NULL REFERENCES statements(id) ON DELETE CASCADE,
            description TEXT NOT NULL,
            amount NUMERIC(18,2) NOT NULL,
            transaction_date TIMESTAMPTZ,
            raw_text TEXT NOT NULL,
            needs_review BOOLEAN NOT NULL DEFAULT FALSE
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_statement_transactions_statement_id ON statement_transactions (statement_id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS statement_transactions;")
    op.execute("DROP TABLE IF EXISTS statements;")
    op.execute("DROP TABLE IF EXISTS bank_accounts;")
    op.execute("DROP TABLE IF EXISTS users;")
