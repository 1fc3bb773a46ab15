"""Training core tables.

Creates accounts, game_sessions, daily_activity, user_unlocks,
leaderboard_snapshots and feature_flags, and seeds the leaderboard flag
(disabled).

Revision ID: 001_training_core
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_training_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Accounts ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS accounts (
            id BIGSERIAL PRIMARY KEY,
            display_name VARCHAR(64) NOT NULL,
            avatar_url TEXT,
            xp BIGINT NOT NULL DEFAULT 0 CHECK (xp >= 0),
            rank_level INTEGER NOT NULL DEFAULT 1,
            currency BIGINT NOT NULL DEFAULT 0,
            energy_current INTEGER NOT NULL DEFAULT 5,
            energy_last_updated TIMESTAMPTZ,
            unlimited_energy_until TIMESTAMPTZ,
            check_in_last_date DATE,
            check_in_streak INTEGER NOT NULL DEFAULT 0,
            owned_items JSONB NOT NULL DEFAULT '[]',
            inventory JSONB NOT NULL DEFAULT '{}',
            is_banned BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_accounts_currency_board
        ON accounts(currency DESC, xp DESC, id)
        WHERE is_banned = false
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_accounts_rank_board
        ON accounts(xp DESC, currency DESC, id)
        WHERE is_banned = false
    """)

    # --- Session log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_sessions (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            game_mode VARCHAR(16) NOT NULL,
            depth INTEGER NOT NULL,
            score INTEGER NOT NULL,
            accuracy DOUBLE PRECISION NOT NULL,
            config_snapshot JSONB NOT NULL,
            avg_reaction_time_ms INTEGER,
            idempotency_key VARCHAR(64),
            rewards JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT game_sessions_account_idem_key UNIQUE (account_id, idempotency_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_game_sessions_account_created
        ON game_sessions(account_id, created_at)
    """)

    # --- Daily activity ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_activity (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            activity_date DATE NOT NULL,
            total_xp INTEGER NOT NULL DEFAULT 0,
            sessions_count INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT daily_activity_account_date_key UNIQUE (account_id, activity_date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_daily_activity_date
        ON daily_activity(activity_date)
    """)

    # --- Unlock trees ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_unlocks (
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            game_mode VARCHAR(16) NOT NULL,
            unlocked_params JSONB NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (account_id, game_mode)
        )
    """)

    # --- Leaderboard snapshots ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS leaderboard_snapshots (
            kind VARCHAR(32) PRIMARY KEY,
            computed_at TIMESTAMPTZ NOT NULL,
            payload JSONB NOT NULL
        )
    """)

    # --- Feature flags ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS feature_flags (
            key VARCHAR(64) PRIMARY KEY,
            enabled BOOLEAN NOT NULL DEFAULT false,
            payload JSONB NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        INSERT INTO feature_flags (key, enabled, payload)
        VALUES ('leaderboard', false,
                '{"top_n": 10, "version": 1, "snapshot_ttl_seconds": 60, "weekly_enabled": false, "hide_guests": false}')
        ON CONFLICT (key) DO NOTHING
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS feature_flags CASCADE")
    op.execute("DROP TABLE IF EXISTS leaderboard_snapshots CASCADE")
    op.execute("DROP TABLE IF EXISTS user_unlocks CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS game_sessions CASCADE")
    op.execute("DROP TABLE IF EXISTS accounts CASCADE")
