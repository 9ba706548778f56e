"""Stage 2: Anonymized peer review of Stage 1 answers."""

import asyncio
import logging
from types import MappingProxyType
from typing import List, Dict, Any, Mapping, Optional, Sequence, Tuple

from ..config_loader import CouncilConfig
from ..providers.base import CompletionClient
from .errors import LabelCapacityError
from .models import AnonymizedResponse, CouncilStage, Stage1Result, Stage2Result
from .ranking import parse_ranking_from_text
from .utils import RESPONSE_LABELS, ProgressReporter, format_history_context

logger = logging.getLogger(__name__)


def anonymize_responses(
    stage1_results: Sequence[Stage1Result],
) -> Tuple[List[AnonymizedResponse], Mapping[str, str]]:
    """Label answers "Response A", "Response B", ... by position.

    The returned label map is read-only and is the only link back to model
    identity; it must never reach the reviewers.
    """
    if len(stage1_results) > len(RESPONSE_LABELS):
        raise LabelCapacityError(len(stage1_results), len(RESPONSE_LABELS))

    anonymized = []
    label_to_model = {}
    for letter, result in zip(RESPONSE_LABELS, stage1_results):
        label = f"Response {letter}"
        label_to_model[label] = result.model
        anonymized.append(AnonymizedResponse(label=label, response=result.response))
    return anonymized, MappingProxyType(label_to_model)


def build_ranking_prompt(
    user_query: str,
    anonymized: Sequence[AnonymizedResponse],
    history_context: str = "",
) -> str:
    responses_text = "\n".join(f"{r.label}:\n{r.response}\n" for r in anonymized)

    return f"""You are an expert evaluator analyzing different AI responses to the same question.

{history_context}ORIGINAL QUESTION:
{user_query}

RESPONSES TO EVALUATE:
{responses_text}
YOUR TASK:
1. Critically evaluate each response for:
   - Accuracy and correctness
   - Completeness and depth
   - Clarity and organization
   - Practical usefulness
   - Any errors or misconceptions

2. Provide detailed critiques for each response.

3. End with a FINAL RANKING section that lists the responses in order from best to worst.
   Format: Start the section with the line "FINAL RANKING:" followed by a numbered list like:
   1. Response C
   2. Response A
   3. Response B
   etc.

Be thorough in your analysis and decisive in your ranking."""


async def stage2_collect_rankings(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    client: CompletionClient,
    config: CouncilConfig,
    conversation_history: Optional[Sequence[Dict[str, Any]]] = None,
    reporter: Optional[ProgressReporter] = None,
) -> Tuple[List[Stage2Result], Mapping[str, str]]:
    """Stage 2: Every council model reviews and ranks the anonymized answers.

    All configured models review, including ones that failed in Stage 1.
    Failed reviews are dropped; an empty result list is not an error.
    """
    reporter = reporter or ProgressReporter()
    models = config.council_models
    anonymized, label_to_model = anonymize_responses(stage1_results)
    valid_labels = frozenset(label_to_model)

    ranking_prompt = build_ranking_prompt(
        user_query,
        anonymized,
        format_history_context(conversation_history, config.history_limit),
    )

    logger.info(
        "Stage 2: %d council models reviewing %d responses", len(models), len(anonymized)
    )

    async def review(model: str) -> Optional[Stage2Result]:
        await reporter.report(CouncilStage.STAGE2, model, 0)
        messages = [{"role": "user", "content": ranking_prompt}]
        try:
            ranking_text = await asyncio.wait_for(
                client.complete(model, messages, temperature=config.stage2_temperature),
                timeout=config.model_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Stage 2: %s timed out after %.0fs", model, config.model_timeout)
            return None
        except Exception as e:
            logger.warning("Stage 2: %s failed: %s", model, e)
            return None
        await reporter.report(CouncilStage.STAGE2, model, 100)

        parsed = parse_ranking_from_text(ranking_text or "", valid_labels)
        if not parsed:
            logger.info("Stage 2: %s returned no usable ranking", model)
        else:
            logger.debug("Stage 2: %s ranking: %s", model, parsed)
        return Stage2Result(
            model=model,
            ranking_text=ranking_text or "",
            parsed_ranking=tuple(parsed),
        )

    reviews = await asyncio.gather(*(review(m) for m in models))
    results = [r for r in reviews if r is not None]

    logger.info("Stage 2 complete: %d/%d models provided rankings", len(results), len(models))
    if not results:
        logger.warning("No rankings collected, proceeding with basic synthesis")
    return results, label_to_model
