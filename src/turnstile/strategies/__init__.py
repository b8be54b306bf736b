"""Authentication strategies."""

from .base import Strategy, StrategyActions
from .session import SessionStrategy

__all__ = [
    "SessionStrategy",
    "Strategy",
    "StrategyActions",
]
