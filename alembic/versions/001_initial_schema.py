"""Users, portfolios and the portfolio change notification trigger.

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.execute("""
        CREATE TABLE users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email TEXT UNIQUE NOT NULL,
            name TEXT,
            plan TEXT NOT NULL DEFAULT 'free' CHECK (plan IN ('free', 'pro_sprint', 'pro_monthly')),
            ai_usage_count INTEGER NOT NULL DEFAULT 0,
            ai_usage_reset_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # Documents are schemaless jsonb; merges replace top-level keys only.
    op.execute("""
        CREATE TABLE portfolios (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    op.execute("""
        CREATE INDEX idx_portfolios_user_updated ON portfolios(user_id, updated_at DESC);
    """)

    # Payload: '<user_id>:<id>'. Listeners re-read the row.
    op.execute("""
        CREATE FUNCTION notify_portfolio_change() RETURNS trigger AS $$
        DECLARE
            row_ref portfolios%ROWTYPE;
        BEGIN
            IF TG_OP = 'DELETE' THEN
                row_ref := OLD;
            ELSE
                row_ref := NEW;
            END IF;
            PERFORM pg_notify('portfolio_changes', row_ref.user_id::text || ':' || row_ref.id::text);
            RETURN NULL;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER portfolios_notify
        AFTER INSERT OR UPDATE OR DELETE ON portfolios
        FOR EACH ROW EXECUTE FUNCTION notify_portfolio_change();
    """)


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS portfolios_notify ON portfolios")
    op.execute("DROP FUNCTION IF EXISTS notify_portfolio_change()")
    op.execute("DROP TABLE IF EXISTS portfolios")
    op.execute("DROP TABLE IF EXISTS users")
