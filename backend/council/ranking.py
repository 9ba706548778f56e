"""Ranking parser and aggregate scoring for Stage 2 evaluation."""

import logging
import re
from typing import Collection, Dict, List, Mapping, Optional, Sequence

from .models import AggregateRanking, Stage2Result

logger = logging.getLogger(__name__)

FINAL_RANKING_MARKER = re.compile(r"FINAL RANKING:", re.IGNORECASE)
# "1. Response C", tolerating markdown emphasis such as "1. **Response C**"
NUMBERED_ENTRY = re.compile(r"\d+\.\s*[*_]*\s*Response\s+([A-Z])\b", re.IGNORECASE)
BARE_MENTION = re.compile(r"Response\s+([A-Z])\b", re.IGNORECASE)


def _collect_labels(
    pattern: re.Pattern,
    text: str,
    valid_labels: Optional[Collection[str]],
) -> List[str]:
    labels: List[str] = []
    for match in pattern.finditer(text):
        label = f"Response {match.group(1).upper()}"
        if valid_labels is not None and label not in valid_labels:
            continue
        if label not in labels:
            labels.append(label)
    return labels


def parse_ranking_from_text(
    text: str,
    valid_labels: Optional[Collection[str]] = None,
) -> List[str]:
    """Parse response labels, best first, from a reviewer's critique.

    Only the text after the last "FINAL RANKING:" marker is considered. A
    numbered list ("1. Response C") wins; otherwise bare "Response X"
    mentions are used in first-mention order. Labels outside valid_labels are
    dropped. Returns an empty list when nothing usable is found.
    """
    markers = list(FINAL_RANKING_MARKER.finditer(text or ""))
    if not markers:
        logger.debug("No FINAL RANKING section found")
        return []

    ranking_section = text[markers[-1].end():]

    labels = _collect_labels(NUMBERED_ENTRY, ranking_section, valid_labels)
    if labels:
        return labels
    return _collect_labels(BARE_MENTION, ranking_section, valid_labels)


def calculate_aggregate_rankings(
    stage2_results: Sequence[Stage2Result],
    label_to_model: Mapping[str, str],
) -> List[AggregateRanking]:
    """Average the positions each model received across all reviewers.

    A label at index i of a reviewer's ranking counts as rank i + 1 for the
    model behind it. Omitted labels contribute nothing, and models nobody
    ranked are left out. Sorted by average rank, lower is better; ties keep
    the order in which models were first ranked.
    """
    model_ranks: Dict[str, List[int]] = {}
    for result in stage2_results:
        for position, label in enumerate(result.parsed_ranking):
            model = label_to_model.get(label)
            if model is None:
                continue
            model_ranks.setdefault(model, []).append(position + 1)

    aggregate = [
        AggregateRanking(
            model=model,
            average_rank=sum(ranks) / len(ranks),
            rankings_count=len(ranks),
        )
        for model, ranks in model_ranks.items()
    ]
    return sorted(aggregate, key=lambda r: r.average_rank)


def format_ranking_summary(rankings: Sequence[AggregateRanking]) -> str:
    return "\n".join(
        f"{i}. {r.model} (avg rank: {r.average_rank:.2f})"
        for i, r in enumerate(rankings, start=1)
    )
