"""Data model shared by the council stages."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Mapping, Tuple


class CouncilStage(str, Enum):
    STAGE1 = "stage1"
    STAGE2 = "stage2"
    STAGE3 = "stage3"


@dataclass(frozen=True)
class Stage1Result:
    """One council member's independent answer."""
    model: str
    response: str


@dataclass(frozen=True)
class AnonymizedResponse:
    """A stage 1 answer as shown to reviewers, identified only by label."""
    label: str
    response: str


@dataclass(frozen=True)
class Stage2Result:
    """One reviewer's critique and the labels it ranked, best first.

    parsed_ranking may be empty when the critique had no usable ranking.
    """
    model: str
    ranking_text: str
    parsed_ranking: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AggregateRanking:
    model: str
    average_rank: float
    rankings_count: int


@dataclass(frozen=True)
class CouncilProgressEvent:
    stage: CouncilStage
    model: str
    progress: int


@dataclass
class CouncilOutcome:
    """Everything one council run produced."""
    chairman_model: str
    final_response: str
    stage1_results: List[Stage1Result] = field(default_factory=list)
    stage2_results: List[Stage2Result] = field(default_factory=list)
    label_to_model: Mapping[str, str] = field(default_factory=dict)
    aggregate_rankings: List[AggregateRanking] = field(default_factory=list)
