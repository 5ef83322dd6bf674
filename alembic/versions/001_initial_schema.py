"""001 – Initial schema: users, leave types, balances, requests, holidays, audit log.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:30:00.000000+03:00
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Enums are stored as VARCHAR + CHECK (the ORM uses non-native enums)
CHECKED_VALUES: dict[str, list[str]] = {
    "user_role": ["employee", "manager", "admin"],
    "leave_status": ["pending", "approved", "rejected", "cancelled", "deducted"],
    "duration_type": ["full", "half_morning", "half_afternoon"],
    "holiday_half": ["morning", "afternoon"],
}


def _in_list(column: str, enum_name: str) -> str:
    vals = ", ".join(f"'{v}'" for v in CHECKED_VALUES[enum_name])
    return f"{column} IN ({vals})"


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    # ── Extensions ────────────────────────────────────────────────────────
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # ── 1. users ──────────────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE users (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            email           VARCHAR(255) NOT NULL UNIQUE,
            name            VARCHAR(200),
            role            VARCHAR(20) NOT NULL DEFAULT 'employee'
                            CHECK ({_in_list("role", "user_role")}),
            manager_email   VARCHAR(255),
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            code            VARCHAR(10) NOT NULL UNIQUE,
            name            VARCHAR(100) NOT NULL,
            is_active       BOOLEAN DEFAULT TRUE,
            created_at      TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. leave_balances ─────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_balances (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id         UUID NOT NULL REFERENCES users(id),
            leave_type_id   UUID NOT NULL REFERENCES leave_types(id),
            accrued         NUMERIC(6,1) NOT NULL DEFAULT 0,
            used            NUMERIC(6,1) NOT NULL DEFAULT 0,
            remaining       NUMERIC(6,1) NOT NULL DEFAULT 0,
            last_updated    TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT uq_leave_balance UNIQUE (user_id, leave_type_id)
        )
    """)

    # ── 4. leave_requests ─────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE leave_requests (
            id                  UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id             UUID NOT NULL REFERENCES users(id),
            email               VARCHAR(255),
            leave_type_id       UUID NOT NULL REFERENCES leave_types(id),
            start_date          DATE NOT NULL,
            end_date            DATE NOT NULL,
            return_date         DATE,
            duration_type       VARCHAR(20) NOT NULL DEFAULT 'full'
                                CHECK ({_in_list("duration_type", "duration_type")}),
            requested_days      NUMERIC(6,1) NOT NULL,
            deducted_days       NUMERIC(6,1),
            status              VARCHAR(20) NOT NULL DEFAULT 'pending'
                                CHECK ({_in_list("status", "leave_status")}),
            manager_email       VARCHAR(255),
            note                TEXT,
            location            VARCHAR(200),
            enable_ooo          BOOLEAN NOT NULL DEFAULT FALSE,
            ooo_custom_message  TEXT,
            rejection_reason    TEXT,
            request_date        TIMESTAMPTZ DEFAULT NOW(),
            approval_date       TIMESTAMPTZ,
            deduction_date      TIMESTAMPTZ,
            cancelled_at        TIMESTAMPTZ,
            updated_at          TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_leave_request_date_order CHECK (start_date <= end_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_requests_user_status ON leave_requests(user_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leave_requests_status_range "
        "ON leave_requests(status, start_date, end_date)"
    )

    # ── 5. holidays ───────────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE holidays (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            date            DATE NOT NULL UNIQUE,
            name            VARCHAR(150) NOT NULL,
            is_half_day     BOOLEAN NOT NULL DEFAULT FALSE,
            half            VARCHAR(20) CHECK (half IS NULL OR {_in_list("half", "holiday_half")}),
            created_at      TIMESTAMPTZ DEFAULT NOW(),
            updated_at      TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_holiday_half_matches_flag CHECK (
                (is_half_day AND half IS NOT NULL) OR (NOT is_half_day AND half IS NULL)
            )
        )
    """)

    # ── 6. audit_logs ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_logs (
            id              UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id        UUID,
            actor_email     VARCHAR(255),
            action          VARCHAR(50) NOT NULL,
            target_table    VARCHAR(50) NOT NULL,
            target_id       UUID,
            status_before   VARCHAR(20),
            status_after    VARCHAR(20),
            details         JSONB,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_logs_actor_id ON audit_logs(actor_id)")
    op.execute("CREATE INDEX ix_audit_logs_target ON audit_logs(target_table, target_id)")
    op.execute("CREATE INDEX ix_audit_logs_created_at ON audit_logs(created_at)")
    op.execute("CREATE INDEX ix_audit_logs_action ON audit_logs(action)")

    # ── Seed: annual leave type ───────────────────────────────────────────
    op.execute("""
        INSERT INTO leave_types (code, name) VALUES ('AL', 'Annual Leave')
        ON CONFLICT (code) DO NOTHING
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_logs",
        "holidays",
        "leave_requests",
        "leave_balances",
        "leave_types",
        "users",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    op.execute('DROP EXTENSION IF EXISTS "uuid-ossp"')
