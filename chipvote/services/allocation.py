from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from chipvote.services.errors import (
    BudgetMismatchError,
    InvalidAllocationError,
    InvalidOptionError,
)

CHIP_TYPES = ("time", "talent", "trust")


@dataclass(frozen=True)
class ChipAllocation:
    """Chips of each type one participant placed on a single option."""

    time: int = 0
    talent: int = 0
    trust: int = 0

    @property
    def total(self) -> int:
        return sum_chip_allocation(self)

    def to_dict(self) -> Dict[str, int]:
        return {"time": self.time, "talent": self.talent, "trust": self.trust}

    @classmethod
    def from_raw(cls, option_id: str, raw: Any) -> "ChipAllocation":
        if isinstance(raw, ChipAllocation):
            return raw
        if not isinstance(raw, Mapping):
            raise InvalidAllocationError(f"Invalid allocation for option {option_id}.")
        unknown = set(raw.keys()) - set(CHIP_TYPES)
        if unknown:
            raise InvalidAllocationError(
                f"Unknown chip type(s) for option {option_id}: "
                f"{', '.join(sorted(str(key) for key in unknown))}."
            )
        counts: Dict[str, int] = {}
        for chip_type in CHIP_TYPES:
            value = raw.get(chip_type)
            # bool is an int subclass; a flag is never a chip count
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidAllocationError(
                    f"Invalid {chip_type} count for option {option_id}."
                )
            counts[chip_type] = value
        return cls(**counts)


def sum_chip_allocation(allocation: Any) -> int:
    """Return the chips placed on one option across all three types."""
    if isinstance(allocation, Mapping):
        return sum(int(allocation.get(chip_type, 0) or 0) for chip_type in CHIP_TYPES)
    return allocation.time + allocation.talent + allocation.trust


def required_total(chips_per_type: int) -> int:
    return int(chips_per_type) * len(CHIP_TYPES)


def validate_allocations(
    raw_allocations: Any,
    legal_option_ids: Sequence[str],
    chips_per_type: int,
) -> Dict[str, ChipAllocation]:
    """
    Validate one participant's allocation map before anything is persisted.

    Unknown option keys fail first, then malformed counts, then the budget:
    the grand total must equal ``chips_per_type * 3`` exactly.
    """
    if not isinstance(raw_allocations, Mapping):
        raise InvalidAllocationError("Allocations payload must be a mapping.")

    legal = set(legal_option_ids)
    for option_id in raw_allocations.keys():
        if option_id not in legal:
            raise InvalidOptionError(
                f"Option {option_id} is not valid for this round."
            )

    parsed: Dict[str, ChipAllocation] = {}
    for option_id, raw in raw_allocations.items():
        parsed[option_id] = ChipAllocation.from_raw(option_id, raw)

    placed = sum(allocation.total for allocation in parsed.values())
    expected = required_total(chips_per_type)
    if placed != expected:
        raise BudgetMismatchError(
            f"Allocations must use all {expected} chips (placed {placed})."
        )
    return parsed


def determine_routing_winner(
    allocations: Mapping[str, Any],
    rng: Optional[Callable[[], float]] = None,
) -> Optional[str]:
    """
    Return the option holding the most chips in a single allocation map.

    Ties are settled by ``rng`` (a zero-argument callable returning a float in
    [0, 1)) indexing into the tied options in map order.
    """
    if not allocations:
        return None
    draw = rng or random.random

    best = None
    leaders: List[str] = []
    for option_id, allocation in allocations.items():
        total = sum_chip_allocation(allocation)
        if best is None or total > best:
            best = total
            leaders = [option_id]
        elif total == best:
            leaders.append(option_id)

    if len(leaders) == 1:
        return leaders[0]
    index = int(draw() * len(leaders))
    return leaders[min(max(index, 0), len(leaders) - 1)]
