"""Pure aggregation of a session's votes into the results document.

Nothing here touches the database. Callers pass the option catalog, the votes
in scan order ``(submitted_at, vote_id)`` and a participant -> department
lookup; the same inputs always produce the same document.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from chipvote.models.session import VotingLayer
from chipvote.services.allocation import CHIP_TYPES, sum_chip_allocation
from chipvote.services.catalog import (
    BOLDNESS_META,
    BoldnessTier,
    OptionCatalog,
    SolutionOption,
)


def calculate_percentage(part: float, whole: float) -> float:
    """Share of ``whole`` as a percentage, rounded half-up to one decimal."""
    if not whole:
        return 0.0
    return math.floor(part / whole * 1000 + 0.5) / 10


def _empty_totals() -> Dict[str, int]:
    return {"time": 0, "talent": 0, "trust": 0, "totalChips": 0}


def _add_allocation(totals: Dict[str, int], allocation: Mapping[str, Any]) -> int:
    placed = 0
    for chip_type in CHIP_TYPES:
        count = int(allocation.get(chip_type, 0) or 0)
        totals[chip_type] += count
        placed += count
    totals["totalChips"] += placed
    return placed


def _option_entry(option, totals: Dict[str, int]) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "optionId": option.option_id,
        "title": option.title,
        "description": option.description,
        "totals": dict(totals),
        "percentages": {
            chip_type: calculate_percentage(totals[chip_type], totals["totalChips"])
            for chip_type in CHIP_TYPES
        },
    }
    if isinstance(option, SolutionOption):
        entry["boldness"] = option.boldness.value
        entry["innovationLabel"] = option.innovation_label
        entry["placeholder"] = option.placeholder
    return entry


def aggregate_layer(options: Sequence[Any], votes: Iterable[Any]) -> Dict[str, Any]:
    """Per-option totals for one round (or one round-two group)."""
    totals_by_option = {option.option_id: _empty_totals() for option in options}
    allocation_count = 0
    total_chips = 0
    for vote in votes:
        allocation_count += 1
        for option_id, allocation in (vote.allocations or {}).items():
            totals = totals_by_option.get(option_id)
            if totals is None:
                continue
            total_chips += _add_allocation(totals, allocation)

    return {
        "totalAllocations": allocation_count,
        "totalChips": total_chips,
        "options": [
            _option_entry(option, totals_by_option[option.option_id])
            for option in options
        ],
    }


def aggregate_boldness(
    solutions: Sequence[SolutionOption],
    votes: Iterable[Any],
    group_total_chips: int,
) -> Dict[str, Dict[str, Any]]:
    tier_by_option = {option.option_id: option.boldness for option in solutions}
    totals = {tier: _empty_totals() for tier in BoldnessTier}
    backers: Dict[BoldnessTier, set] = {tier: set() for tier in BoldnessTier}

    for vote in votes:
        for option_id, allocation in (vote.allocations or {}).items():
            tier = tier_by_option.get(option_id)
            if tier is None:
                continue
            if _add_allocation(totals[tier], allocation) > 0:
                backers[tier].add(vote.participant_id)

    rollup: Dict[str, Dict[str, Any]] = {}
    for tier in BoldnessTier:
        meta = BOLDNESS_META[tier]
        rollup[tier.value] = {
            "tier": tier.value,
            "label": meta["label"],
            "innovationLabel": meta["innovation_label"],
            "totals": totals[tier],
            "percentageOfLayer": calculate_percentage(
                totals[tier]["totalChips"], group_total_chips
            ),
            "allocationCount": len(backers[tier]),
        }
    return rollup


def aggregate_departments(
    votes: Iterable[Any],
    departments: Mapping[str, Optional[str]],
    legal_option_ids: Iterable[str],
) -> Dict[str, Dict[str, Any]]:
    """
    Chips and top option per department for one round.

    The top option is the true maximum of accumulated chips; among equal
    totals the option first seen in scan order keeps the spot. Participants
    without a department are left out.
    """
    legal = set(legal_option_ids)
    stats: Dict[str, Dict[str, Any]] = {}
    option_totals: Dict[str, Dict[str, int]] = {}

    for vote in votes:
        department = departments.get(vote.participant_id)
        if not department:
            continue
        record = stats.setdefault(
            department,
            {
                "totalChips": 0,
                "totalParticipants": 0,
                "topOptionId": None,
                "topOptionChips": 0,
            },
        )
        record["totalParticipants"] += 1
        per_option = option_totals.setdefault(department, {})
        for option_id, allocation in (vote.allocations or {}).items():
            delta = sum_chip_allocation(allocation)
            record["totalChips"] += delta
            if option_id not in legal or delta <= 0:
                continue
            per_option[option_id] = per_option.get(option_id, 0) + delta

    for department, record in stats.items():
        for option_id, chips in option_totals.get(department, {}).items():
            if chips > record["topOptionChips"]:
                record["topOptionId"] = option_id
                record["topOptionChips"] = chips
    return stats


def build_session_results(
    catalog: OptionCatalog,
    votes: Sequence[Any],
    departments: Mapping[str, Optional[str]],
    participant_count: int = 0,
) -> Dict[str, Any]:
    layer1_votes: List[Any] = []
    layer2_votes: Dict[str, List[Any]] = {}
    for vote in votes:
        if vote.layer == VotingLayer.LAYER1.value:
            layer1_votes.append(vote)
        elif vote.layer == VotingLayer.LAYER2.value and vote.group_id:
            layer2_votes.setdefault(vote.group_id, []).append(vote)

    layer1 = aggregate_layer(catalog.focus_list(), layer1_votes)

    group_ids = list(catalog.focus_order)
    group_ids.extend(
        group_id for group_id in catalog.solutions if group_id not in catalog.focus_options
    )
    layer2: Dict[str, Any] = {}
    for group_id in group_ids:
        solutions = catalog.solutions_for(group_id)
        group_votes = layer2_votes.get(group_id, [])
        group_results = aggregate_layer(solutions, group_votes)
        group_results["boldnessTotals"] = aggregate_boldness(
            solutions, group_votes, group_results["totalChips"]
        )
        layer2[group_id] = group_results

    solution_ids = [
        option.option_id for group in catalog.solutions.values() for option in group
    ]
    layer2_scan = [
        vote
        for vote in votes
        if vote.layer == VotingLayer.LAYER2.value and vote.group_id in layer2
    ]

    summary = {
        "totalParticipants": int(participant_count or 0),
        "layer1Allocations": layer1["totalAllocations"],
        "layer2Allocations": sum(g["totalAllocations"] for g in layer2.values()),
        "totalLayer1Chips": layer1["totalChips"],
        "totalLayer2Chips": sum(g["totalChips"] for g in layer2.values()),
    }

    return {
        "summary": summary,
        "layer1": layer1,
        "layer2": layer2,
        "departments": {
            "layer1": aggregate_departments(
                layer1_votes, departments, catalog.focus_order
            ),
            "layer2": aggregate_departments(layer2_scan, departments, solution_ids),
        },
    }
