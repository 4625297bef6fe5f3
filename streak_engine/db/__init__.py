"""Persistence contracts and adapters"""
from streak_engine.db.repository import RewardGranter, StreakRepository
from streak_engine.db.memory_repository import InMemoryStreakRepository
from streak_engine.db.postgres_repository import PostgresStreakRepository

__all__ = [
    "RewardGranter",
    "StreakRepository",
    "InMemoryStreakRepository",
    "PostgresStreakRepository",
]
