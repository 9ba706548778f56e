"""3-stage LLM Council consensus pipeline.

This package provides the full deliberation pipeline:
- Stage 1: Collect independent responses from council members
- Stage 2: Anonymized peer review and ranking
- Aggregation: Average peer rankings into a consensus order
- Stage 3: Chairman synthesis of the final answer, streamed
"""

from .errors import CouncilError, NoCouncilResponsesError, ChairmanSynthesisError, LabelCapacityError
from .models import (
    AggregateRanking,
    AnonymizedResponse,
    CouncilOutcome,
    CouncilProgressEvent,
    CouncilStage,
    Stage1Result,
    Stage2Result,
)
from .ranking import parse_ranking_from_text, calculate_aggregate_rankings, format_ranking_summary
from .stage1 import stage1_collect_responses
from .stage2 import anonymize_responses, build_ranking_prompt, stage2_collect_rankings
from .stage3 import build_synthesis_prompt, stage3_synthesize_final
from .pipeline import CouncilPipeline, run_council_process

__all__ = [
    "CouncilError",
    "NoCouncilResponsesError",
    "ChairmanSynthesisError",
    "LabelCapacityError",
    "AggregateRanking",
    "AnonymizedResponse",
    "CouncilOutcome",
    "CouncilProgressEvent",
    "CouncilStage",
    "Stage1Result",
    "Stage2Result",
    "parse_ranking_from_text",
    "calculate_aggregate_rankings",
    "format_ranking_summary",
    "stage1_collect_responses",
    "anonymize_responses",
    "build_ranking_prompt",
    "stage2_collect_rankings",
    "build_synthesis_prompt",
    "stage3_synthesize_final",
    "CouncilPipeline",
    "run_council_process",
]
