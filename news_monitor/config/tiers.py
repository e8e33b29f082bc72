"""Priority tiers used to group monitored sources."""

from dataclasses import dataclass
from enum import IntEnum


class Tier(IntEnum):
    """The four fixed source tiers, lowest value first in display order."""

    GOVERNMENT = 1
    NO_TECH_MEDIA = 2
    GLOBAL_TECH = 3
    AGGREGATORS = 4


@dataclass(frozen=True)
class TierConfig:
    """Display metadata for a tier."""

    tier: Tier
    name: str
    description: str


TIER_CONFIGS: dict[Tier, TierConfig] = {
    Tier.GOVERNMENT: TierConfig(
        tier=Tier.GOVERNMENT,
        name="Government",
        description="Norwegian Government & Tax",
    ),
    Tier.NO_TECH_MEDIA: TierConfig(
        tier=Tier.NO_TECH_MEDIA,
        name="NO Tech Media",
        description="Norwegian Tech News",
    ),
    Tier.GLOBAL_TECH: TierConfig(
        tier=Tier.GLOBAL_TECH,
        name="Global Tech",
        description="International Tech Companies",
    ),
    Tier.AGGREGATORS: TierConfig(
        tier=Tier.AGGREGATORS,
        name="Aggregators",
        description="Tech News Aggregators",
    ),
}


def parse_tier(value: int | str | Tier) -> Tier:
    """Coerce a raw tier value into a Tier.

    Raises:
        ValueError: If the value is not one of the four tiers.
    """
    try:
        return Tier(int(value))
    except (TypeError, ValueError) as e:
        raise ValueError(
            f"Invalid tier {value!r}. Must be one of: {[t.value for t in Tier]}"
        ) from e
