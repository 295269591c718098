from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from chipvote.models.session import VotingLayer
from chipvote.services.errors import CatalogError


class BoldnessTier(str, Enum):
    SAFE_BET = "safe_bet"
    JACKPOT = "jackpot"
    WILD_CARD = "wild_card"
    MOONSHOT = "moonshot"


BOLDNESS_META: Dict[BoldnessTier, Dict[str, str]] = {
    BoldnessTier.SAFE_BET: {"label": "Safe Bet", "innovation_label": "Incremental"},
    BoldnessTier.JACKPOT: {"label": "Jackpot", "innovation_label": "Adjacent"},
    BoldnessTier.WILD_CARD: {"label": "Wild Card", "innovation_label": "Disruptive"},
    BoldnessTier.MOONSHOT: {
        "label": "Moonshot",
        "innovation_label": "Transformational",
    },
}


@dataclass(frozen=True)
class FocusOption:
    """A round-one option; also the group id for round two."""

    option_id: str
    title: str
    description: str = ""


@dataclass(frozen=True)
class SolutionOption:
    """A round-two option belonging to one focus area."""

    option_id: str
    group_id: str
    title: str
    boldness: BoldnessTier
    description: str = ""
    innovation_label: str = ""
    placeholder: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.option_id,
            "title": self.title,
            "description": self.description,
            "boldness": self.boldness.value,
            "innovationLabel": self.innovation_label,
        }
        if self.placeholder:
            payload["placeholder"] = True
        return payload


def _solution(group_id, option_id, title, description, tier, placeholder=False):
    return {
        "id": option_id,
        "painPointId": group_id,
        "title": title,
        "description": description,
        "boldness": tier.value,
        "innovationLabel": BOLDNESS_META[tier]["innovation_label"],
        "placeholder": placeholder,
    }


DEFAULT_FOCUS_AREAS: List[Dict[str, str]] = [
    {
        "id": "pain-point-manual-reporting",
        "title": "Manual & Redundant Reporting",
        "description": "Teams waste hours on reports that could be automated.",
    },
    {
        "id": "pain-point-data-process",
        "title": "Inefficient Data & Processes",
        "description": "Finding information is slow; data lives in disconnected systems.",
    },
    {
        "id": "pain-point-communication",
        "title": "Communication & Collaboration",
        "description": "Information doesn't flow well between teams and departments.",
    },
    {
        "id": "pain-point-workload",
        "title": "Workload & Workforce Management",
        "description": "Hard to see capacity and balance work across teams.",
    },
]

DEFAULT_SOLUTIONS: Dict[str, List[Dict[str, Any]]] = {
    "pain-point-manual-reporting": [
        _solution(
            "pain-point-manual-reporting",
            "solution-manual-reporting-power-bi",
            "Power BI Automation",
            "Automate the top 5 most common performance or compliance reports through Power BI.",
            BoldnessTier.SAFE_BET,
        ),
        _solution(
            "pain-point-manual-reporting",
            "solution-manual-reporting-digital-forms",
            "Digital Request Forms",
            "Create a simple digital form for all departments to request data from each other, replacing email chains.",
            BoldnessTier.JACKPOT,
        ),
        _solution(
            "pain-point-manual-reporting",
            "solution-manual-reporting-genai-summaries",
            "GenAI Report Summaries",
            "Implement a generative AI tool that detects patterns and writes narrative summaries for departmental reports.",
            BoldnessTier.WILD_CARD,
        ),
        _solution(
            "pain-point-manual-reporting",
            "solution-manual-reporting-insights-hub",
            "Predictive Insights Hub",
            "Create a predictive insights hub that synthesizes service, workforce, and safety data for proactive decisions.",
            BoldnessTier.MOONSHOT,
        ),
    ],
    "pain-point-data-process": [
        _solution(
            "pain-point-data-process",
            "solution-data-process-ai-assistant",
            "AI-Powered Employee Assistant",
            "Deploy a single virtual assistant for employees to handle common queries on policies, pay, and benefits.",
            BoldnessTier.SAFE_BET,
        ),
        _solution(
            "pain-point-data-process",
            "solution-data-process-tagging",
            "Intelligent Data Tagging",
            "Automatically tag, categorize, and link information across existing departmental databases.",
            BoldnessTier.JACKPOT,
        ),
        _solution(
            "pain-point-data-process",
            "solution-data-process-conversational-analytics",
            "Conversational Analytics",
            "Let leaders ask natural-language questions about performance and compliance.",
            BoldnessTier.WILD_CARD,
        ),
        _solution(
            "pain-point-data-process",
            "solution-data-process-orchestrator",
            "Enterprise Work Orchestrator",
            "Dynamically allocate tasks and resources across departments in real time.",
            BoldnessTier.MOONSHOT,
        ),
    ],
    "pain-point-communication": [
        _solution(
            "pain-point-communication",
            "solution-communication-notifications",
            "Automated Notifications",
            "Automate email updates and alerts through adaptive notifications.",
            BoldnessTier.SAFE_BET,
        ),
        _solution(
            "pain-point-communication",
            "solution-communication-meeting-assistant",
            "AI Meeting Assistant",
            "Transcribe leadership meetings, identify action items, and flag miscommunications.",
            BoldnessTier.JACKPOT,
        ),
        _solution(
            "pain-point-communication",
            "solution-communication-collab-spaces",
            "Real-Time Collaboration Spaces",
            "Create digital collaboration spaces using intelligent tags and dynamic search.",
            BoldnessTier.WILD_CARD,
        ),
        _solution(
            "pain-point-communication",
            "solution-communication-connection-engine",
            "AI Connection Engine",
            "Proactively connect employees working on related problems or with complementary skills.",
            BoldnessTier.MOONSHOT,
        ),
    ],
    "pain-point-workload": [
        _solution(
            "pain-point-workload",
            "solution-workload-heatmap",
            "Workload Heat Map Dashboard",
            "Show leadership capacity and bottlenecks across departments on a visual heat map.",
            BoldnessTier.SAFE_BET,
        ),
        _solution(
            "pain-point-workload",
            "solution-workload-forecasting",
            "Predictive Resource Forecasting",
            "Forecast resource demand and training requirements from live operational data.",
            BoldnessTier.JACKPOT,
        ),
        _solution(
            "pain-point-workload",
            "solution-workload-placeholder",
            "Exploratory Initiative",
            "A high-potential, undefined project to explore novel workforce management solutions.",
            BoldnessTier.WILD_CARD,
            placeholder=True,
        ),
        _solution(
            "pain-point-workload",
            "solution-workload-talent-marketplace",
            "Dynamic Talent Marketplace",
            "Make projects visible so employees can be assigned based on skills and capacity.",
            BoldnessTier.MOONSHOT,
        ),
    ],
}


def default_catalog_record() -> Tuple[List[str], Dict[str, Dict[str, str]], Dict[str, List[Dict[str, Any]]]]:
    """Return fresh copies of the default deck in storage shape."""
    order = [entry["id"] for entry in DEFAULT_FOCUS_AREAS]
    options = {
        entry["id"]: {"title": entry["title"], "description": entry["description"]}
        for entry in DEFAULT_FOCUS_AREAS
    }
    return order, options, copy.deepcopy(DEFAULT_SOLUTIONS)


def _parse_tier(raw: Any, option_id: str) -> BoldnessTier:
    try:
        return BoldnessTier(str(raw))
    except ValueError as exc:
        raise CatalogError(
            f"Solution {option_id} has an unknown boldness tier: {raw!r}."
        ) from exc


@dataclass(frozen=True)
class OptionCatalog:
    focus_order: Tuple[str, ...]
    focus_options: Dict[str, FocusOption] = field(default_factory=dict)
    solutions: Dict[str, Tuple[SolutionOption, ...]] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        order: Optional[List[str]],
        options: Optional[Dict[str, Any]],
        solutions: Optional[Dict[str, Any]],
    ) -> "OptionCatalog":
        """Validate stored catalog records once, falling back to the default deck."""
        default_order, default_options, default_solutions = default_catalog_record()
        if not options:
            order, options = default_order, default_options
        if not order:
            order = list(options.keys())
        if not solutions:
            solutions = default_solutions

        focus_options: Dict[str, FocusOption] = {}
        for option_id in order:
            raw = options.get(option_id)
            if not isinstance(raw, dict):
                raise CatalogError(f"Focus area {option_id} is missing from the catalog.")
            focus_options[option_id] = FocusOption(
                option_id=option_id,
                title=str(raw.get("title") or option_id),
                description=str(raw.get("description") or ""),
            )

        seen: set = set(focus_options)
        parsed_solutions: Dict[str, Tuple[SolutionOption, ...]] = {}
        for group_id, entries in solutions.items():
            group: List[SolutionOption] = []
            for raw in entries or []:
                if not isinstance(raw, dict) or not raw.get("id"):
                    raise CatalogError(f"Group {group_id} has a malformed solution.")
                option_id = str(raw["id"])
                if option_id in seen:
                    raise CatalogError(f"Option id {option_id} is used more than once.")
                seen.add(option_id)
                tier = _parse_tier(raw.get("boldness"), option_id)
                group.append(
                    SolutionOption(
                        option_id=option_id,
                        group_id=group_id,
                        title=str(raw.get("title") or option_id),
                        description=str(raw.get("description") or ""),
                        boldness=tier,
                        innovation_label=str(
                            raw.get("innovationLabel")
                            or BOLDNESS_META[tier]["innovation_label"]
                        ),
                        placeholder=bool(raw.get("placeholder", False)),
                    )
                )
            parsed_solutions[group_id] = tuple(group)

        return cls(
            focus_order=tuple(order),
            focus_options=focus_options,
            solutions=parsed_solutions,
        )

    @classmethod
    def from_session(cls, session: Any) -> "OptionCatalog":
        return cls.from_records(
            getattr(session, "option_order", None),
            getattr(session, "options", None),
            getattr(session, "solutions", None),
        )

    def focus_list(self) -> List[FocusOption]:
        return [self.focus_options[option_id] for option_id in self.focus_order]

    def solutions_for(self, group_id: Optional[str]) -> Tuple[SolutionOption, ...]:
        if not group_id:
            return ()
        return self.solutions.get(group_id, ())

    def legal_option_ids(
        self, layer: VotingLayer, group_id: Optional[str] = None
    ) -> Tuple[str, ...]:
        if layer == VotingLayer.LAYER1:
            return self.focus_order
        return tuple(option.option_id for option in self.solutions_for(group_id))

    def find(self, option_id: str):
        if option_id in self.focus_options:
            return self.focus_options[option_id]
        for group in self.solutions.values():
            for option in group:
                if option.option_id == option_id:
                    return option
        return None
