"""StrategyRegistry - named strategy instances for one authenticator.

Strategies are registered during application setup and looked up by name on
every request. Names are case-sensitive and unique; registering a name again
replaces the previous instance. There is no locking: the registry is expected
to be filled before traffic starts.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING

import structlog

from turnstile.errors import StrategyNameError

if TYPE_CHECKING:
    from turnstile.strategies.base import Strategy

logger = structlog.get_logger()


class StrategyRegistry:
    """Mapping of strategy name to strategy instance.

    Example:
        registry = StrategyRegistry()
        registry.register(LocalStrategy())            # uses LocalStrategy.name
        registry.register("api", BearerStrategy())    # explicit name
        registry.lookup("api")
    """

    def __init__(self) -> None:
        self._strategies: dict[str, Strategy] = {}

    def register(self, name: str | Strategy | None, strategy: Strategy | None = None) -> Strategy:
        """Register a strategy under a name.

        Args:
            name: The registration name, or the strategy itself when its own
                ``name`` attribute should be used
            strategy: The strategy instance when an explicit name is given

        Returns:
            The registered strategy

        Raises:
            StrategyNameError: If no name was given and the strategy has none
        """
        if strategy is None:
            if name is None or isinstance(name, str):
                raise TypeError("register() requires a strategy instance")
            strategy = name
            name = None
        if name is None:
            name = getattr(strategy, "name", None)

        if not name or not isinstance(name, str):
            raise StrategyNameError()

        if name in self._strategies:
            logger.debug("Replacing registered strategy", strategy=name)

        self._strategies[name] = strategy
        return strategy

    def unregister(self, name: str) -> None:
        """Remove a strategy. Unknown names are ignored."""
        self._strategies.pop(name, None)

    def lookup(self, name: str) -> Strategy | None:
        """Return the strategy registered under ``name``, or None."""
        return self._strategies.get(name)

    def names(self) -> list[str]:
        """Registered names in registration order."""
        return list(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    def __len__(self) -> int:
        return len(self._strategies)

    def __iter__(self) -> Iterator[str]:
        return iter(self._strategies)
