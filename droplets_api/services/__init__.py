"""Domain services behind the HTTP routes."""

from .auth import AuthService
from .characters import CharacterService
from .creations import CreationService
from .leaderboard import LeaderboardService
from .lore import LoreService
from .reconcile import CreationReconciler
from .world import WorldService

__all__ = [
    "AuthService",
    "CharacterService",
    "CreationReconciler",
    "CreationService",
    "LeaderboardService",
    "LoreService",
    "WorldService",
]
