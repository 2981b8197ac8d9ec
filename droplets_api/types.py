"""Type definitions for the Droplets API."""

from typing import Any, Literal

from typing_extensions import TypedDict

IntentStatus = Literal["pending", "persisting", "completed", "failed", "abandoned"]


class UserRecord(TypedDict):
    """Public view of a user row."""

    id: str
    username: str
    solana_address: str
    created_at: str
    updated_at: str


class CharacterRecord(TypedDict, total=False):
    """Row of the characters table."""

    id: str
    owner_user_id: str
    wallet_address: str | None
    name: str | None
    is_legendary: bool
    x: float
    y: float
    level: int
    water_count: int
    sprite_seed: str | None
    color_palette: str | None
    image_url: str | None
    created_at: str
    updated_at: str
    owner_username: str | None


class CreationRecord(TypedDict):
    """JSON document kept in the creations KV namespace."""

    id: str
    level: int
    seed: str
    image_key: str
    image_url: str
    preview_url: str
    traits: dict[str, Any]
    wallet: str | None
    user_id: str
    name: str
    created_at: str


class WorldStateRecord(TypedDict):
    """Singleton aggregate counters."""

    id: int
    total_characters: int
    total_waters: int
    season: str
    last_milestone_reached: int
    current_phase: str
    updated_at: str


class LoreRecord(TypedDict):
    """Row of the lore_entries table."""

    id: str
    character_id: str
    author_user_id: str
    body: str
    created_at: str


class WaterResult(TypedDict):
    """Outcome of watering a character."""

    water_count: int
    level: int
    leveled_up: bool


class HealthStatus(TypedDict):
    """Health status of system components."""

    database: bool
    cache: bool
    blobs: bool
    image_provider: bool


class ReconcileReport(TypedDict):
    """Summary of one reconciliation pass."""

    checked: int
    completed: int
    announced: int
    abandoned: int
    orphans_removed: int
