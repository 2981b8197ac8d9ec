"""Game rules: evolution, rarity, names, spawn positions, milestones and world phases."""

import json
import math
import random
from dataclasses import dataclass

MAX_LEVEL = 5

# Cumulative waters needed to reach each level.
EVOLUTION_THRESHOLDS = {2: 3, 3: 10, 4: 25, 5: 50}

LEGENDARY_CHANCE = 0.01
COLOR_CHANCE = 0.05

WORLD_WIDTH = 1920
GROUND_Y_START = 600
GROUND_HEIGHT = 200
MIN_SPACING = 80
PLACEMENT_ATTEMPTS = 50

SEASONS = ("spring", "summer", "autumn", "winter")
PHASES = ("dawn", "day", "dusk", "night")

NAME_PREFIXES = ("Aqua", "Dew", "Rain", "Mist", "Drop", "Splash", "Tide", "Wave")
NAME_SUFFIXES = ("ling", "ie", "let", "kin", "bud", "bloom", "sprite", "wisp")

LEGENDARY_PALETTE = {
    "primary": "#FFD700",
    "secondary": "#FFA500",
    "accent": "#FF69B4",
    "glow": "#FFFFFF",
    "hasColor": True,
}

COLOR_PALETTES = (
    {"primary": "#4A90E2", "secondary": "#7EC8E3", "accent": "#A8DADC"},  # blue
    {"primary": "#E27D60", "secondary": "#E8A87C", "accent": "#F5DEB3"},  # orange
    {"primary": "#85CDCA", "secondary": "#C38D9E", "accent": "#F7CAC9"},  # teal/pink
    {"primary": "#41B3A3", "secondary": "#6FEDD6", "accent": "#9FFFCB"},  # green
    {"primary": "#9B59B6", "secondary": "#BB6BD9", "accent": "#D7BDE2"},  # purple
    {"primary": "#E74C3C", "secondary": "#EC7063", "accent": "#F1948A"},  # red
)

DEFAULT_PALETTE = {
    "primary": "#FFFFFF",
    "secondary": "#CCCCCC",
    "accent": "#999999",
    "hasColor": False,
}


@dataclass(frozen=True)
class Milestone:
    threshold: int
    type: str
    name: str


MILESTONES = (
    Milestone(100, "streams", "Flowing Waters"),
    Milestone(500, "plants", "Growing Life"),
    Milestone(1000, "lights", "Town Lights"),
    Milestone(5000, "village", "Thriving Village"),
    Milestone(10000, "city", "Grand City"),
)


def level_for_waters(water_count: int, current_level: int = 1) -> int:
    """Level reached after ``water_count`` waters. Never lower than ``current_level``."""
    level = current_level
    for candidate, threshold in EVOLUTION_THRESHOLDS.items():
        if water_count >= threshold:
            level = max(level, candidate)
    return min(level, MAX_LEVEL)


def roll_legendary(rng: random.Random | None = None) -> bool:
    return (rng or random).random() < LEGENDARY_CHANCE


def color_palette(is_legendary: bool, rng: random.Random | None = None) -> str:
    """Palette JSON for a new character."""
    rng = rng or random
    if is_legendary:
        return json.dumps(LEGENDARY_PALETTE)
    if rng.random() < COLOR_CHANCE:
        return json.dumps({**rng.choice(COLOR_PALETTES), "hasColor": True})
    return json.dumps(DEFAULT_PALETTE)


def character_name(rng: random.Random | None = None) -> str:
    rng = rng or random
    return f"{rng.choice(NAME_PREFIXES)}{rng.choice(NAME_SUFFIXES)}"


def spawn_position(rng: random.Random | None = None) -> tuple[float, float]:
    """Random point on the ground band of the world."""
    rng = rng or random
    return rng.random() * WORLD_WIDTH, GROUND_Y_START + rng.random() * GROUND_HEIGHT


def spread_positions(count: int, rng: random.Random | None = None) -> list[tuple[float, float]]:
    """Pick ``count`` positions at least ``MIN_SPACING`` apart where possible.

    Each position gets ``PLACEMENT_ATTEMPTS`` tries; when none fits, a random
    position is used anyway.
    """
    occupied: list[tuple[float, float]] = []
    for _ in range(count):
        chosen = None
        for _ in range(PLACEMENT_ATTEMPTS):
            x, y = spawn_position(rng)
            if all(math.dist((x, y), other) >= MIN_SPACING for other in occupied):
                chosen = (x, y)
                break
        occupied.append(chosen or spawn_position(rng))
    return occupied


def milestones_status(total_characters: int) -> list[dict]:
    return [
        {
            "threshold": m.threshold,
            "type": m.type,
            "name": m.name,
            "unlocked": total_characters >= m.threshold,
        }
        for m in MILESTONES
    ]


def crossed_milestones(total_characters: int, last_reached: int) -> list[Milestone]:
    """Milestones reached by ``total_characters`` and not yet announced."""
    return [
        m for m in MILESTONES if total_characters >= m.threshold and last_reached < m.threshold
    ]


def next_phase(phase: str) -> str:
    index = PHASES.index(phase) if phase in PHASES else -1
    return PHASES[(index + 1) % len(PHASES)]
