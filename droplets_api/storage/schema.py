"""Relational schema (SQLAlchemy Core)."""

from datetime import UTC, datetime

import sqlalchemy as sa

metadata = sa.MetaData()


def now_iso() -> str:
    """Current UTC time in the ISO-8601 form used for every timestamp column."""
    return datetime.now(UTC).isoformat()


users = sa.Table(
    "users",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("username", sa.String, nullable=False, unique=True),
    sa.Column("password_hash", sa.String, nullable=False),
    sa.Column("solana_address", sa.String, nullable=False, unique=True),
    sa.Column("created_at", sa.String, nullable=False),
    sa.Column("updated_at", sa.String, nullable=False),
)

sessions = sa.Table(
    "sessions",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("user_id", sa.String, nullable=False, index=True),
    sa.Column("token_hash", sa.String, nullable=False, unique=True),
    sa.Column("expires_at", sa.String, nullable=False),
    sa.Column("created_at", sa.String, nullable=False),
)

characters = sa.Table(
    "characters",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("owner_user_id", sa.String, nullable=False, index=True),
    sa.Column("wallet_address", sa.String),
    sa.Column("name", sa.String),
    sa.Column("is_legendary", sa.Boolean, nullable=False, default=False),
    sa.Column("x", sa.Float, nullable=False),
    sa.Column("y", sa.Float, nullable=False),
    sa.Column("level", sa.Integer, nullable=False, default=1),
    sa.Column("water_count", sa.Integer, nullable=False, default=0),
    sa.Column("sprite_seed", sa.String),
    sa.Column("color_palette", sa.Text),
    sa.Column("image_url", sa.String),
    sa.Column("created_at", sa.String, nullable=False, index=True),
    sa.Column("updated_at", sa.String, nullable=False),
)

# One row per (user, character, UTC day); the constraint makes the daily check atomic.
waters = sa.Table(
    "waters",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("user_id", sa.String, nullable=False),
    sa.Column("character_id", sa.String, nullable=False, index=True),
    sa.Column("water_date", sa.String, nullable=False),
    sa.Column("created_at", sa.String, nullable=False),
    sa.UniqueConstraint("user_id", "character_id", "water_date", name="uq_waters_daily"),
)

lore_entries = sa.Table(
    "lore_entries",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("character_id", sa.String, nullable=False, index=True),
    sa.Column("author_user_id", sa.String, nullable=False),
    sa.Column("body", sa.Text, nullable=False),
    sa.Column("created_at", sa.String, nullable=False),
)

world_state = sa.Table(
    "world_state",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=False),
    sa.Column("total_characters", sa.Integer, nullable=False, default=0),
    sa.Column("total_waters", sa.Integer, nullable=False, default=0),
    sa.Column("season", sa.String, nullable=False, default="spring"),
    sa.Column("last_milestone_reached", sa.Integer, nullable=False, default=0),
    sa.Column("current_phase", sa.String, nullable=False, default="day"),
    sa.Column("updated_at", sa.String, nullable=False),
)

events = sa.Table(
    "events",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("type", sa.String, nullable=False),
    sa.Column("payload", sa.Text, nullable=False),
    sa.Column("created_at", sa.String, nullable=False, index=True),
)

creation_intents = sa.Table(
    "creation_intents",
    metadata,
    sa.Column("id", sa.String, primary_key=True),
    sa.Column("user_id", sa.String, nullable=False),
    sa.Column("status", sa.String, nullable=False, index=True),
    sa.Column("record", sa.Text),
    sa.Column("error", sa.Text),
    sa.Column(
        "announced", sa.Boolean, nullable=False, default=False, server_default=sa.false()
    ),
    sa.Column("created_at", sa.String, nullable=False),
    sa.Column("updated_at", sa.String, nullable=False),
)


def row_to_dict(row, table: sa.Table, *extra: str) -> dict:
    """Convert a fetched row of ``table`` (plus labelled extra columns) to a dict."""
    return {name: row[name] for name in (*table.c.keys(), *extra)}
