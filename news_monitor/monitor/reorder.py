"""Drag-and-drop reordering within a tier."""

from typing import TypeVar

import structlog

from news_monitor.config.tiers import Tier
from news_monitor.sources.registry import SourceRegistry
from news_monitor.sources.schemas import coerce_tier

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def move_item(items: list[T], from_index: int, to_index: int) -> list[T]:
    """Return a copy with the item at ``from_index`` reinserted at ``to_index``."""
    moved = list(items)
    item = moved.pop(from_index)
    moved.insert(to_index, item)
    return moved


class ReorderCoordinator:
    """Turns an index move into a full tier order and hands it to the registry.

    The registry applies the order optimistically and restores the
    previous one if it cannot be persisted.
    """

    def __init__(self, registry: SourceRegistry) -> None:
        self._registry = registry

    async def reorder(self, tier: Tier | int, from_index: int, to_index: int) -> bool:
        """Move one source within its tier.

        Returns:
            True if a new order was persisted. False for an out-of-range
            or equal pair of indexes, which changes nothing.

        Raises:
            PersistenceError: If the new order could not be saved; the
                registry is back on the previous order by then.
        """
        tier = coerce_tier(tier)
        current = self._registry.tier_ids(tier)
        size = len(current)

        if from_index == to_index:
            return False
        if not (0 <= from_index < size and 0 <= to_index < size):
            logger.debug(
                "Ignoring out-of-range reorder",
                tier=int(tier), from_index=from_index, to_index=to_index, size=size,
            )
            return False

        new_order = move_item(current, from_index, to_index)
        return await self._registry.reorder(tier, new_order)
