"""Stage 3: Chairman synthesis of deliberation results."""

import asyncio
import logging
from typing import List, Dict, Any, Optional, Sequence

from ..config_loader import CouncilConfig
from ..providers.base import CompletionClient
from .errors import ChairmanSynthesisError
from .models import AggregateRanking, CouncilStage, Stage1Result, Stage2Result
from .ranking import format_ranking_summary
from .utils import ChunkCallback, ProgressReporter, format_history_context

logger = logging.getLogger(__name__)

NO_RANKINGS_NOTE = "No peer rankings were available; weigh the responses on their own merits."


def build_synthesis_prompt(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    stage2_results: Sequence[Stage2Result],
    aggregate_rankings: Sequence[AggregateRanking],
    history_context: str = "",
) -> str:
    stage1_context = "\n\n---\n\n".join(
        f"Model: {r.model}\nResponse: {r.response}" for r in stage1_results
    )
    stage2_context = "\n\n---\n\n".join(
        f"Model: {r.model}\nRanking: {r.ranking_text}" for r in stage2_results
    ) or "No peer reviews were collected."
    ranking_summary = format_ranking_summary(aggregate_rankings) or NO_RANKINGS_NOTE

    return f"""You are the chairman of an AI council. Multiple expert AI models have analyzed this question and peer-reviewed each other's responses.

{history_context}ORIGINAL QUESTION:
{user_query}

COUNCIL RESPONSES:
{stage1_context}

PEER REVIEWS:
{stage2_context}

AGGREGATE RANKINGS (based on peer review):
{ranking_summary}

YOUR TASK:
Synthesize a comprehensive, authoritative answer that:
1. Incorporates the best insights from all council members
2. Resolves disagreements by weighing evidence and rankings
3. Provides a clear, unified response
4. Acknowledges any remaining uncertainties or different perspectives
5. Delivers practical, actionable information

Create the definitive answer that represents the council's collective wisdom."""


async def stage3_synthesize_final(
    user_query: str,
    stage1_results: Sequence[Stage1Result],
    stage2_results: Sequence[Stage2Result],
    aggregate_rankings: Sequence[AggregateRanking],
    client: CompletionClient,
    config: CouncilConfig,
    conversation_history: Optional[Sequence[Dict[str, Any]]] = None,
    on_chunk: Optional[ChunkCallback] = None,
    reporter: Optional[ProgressReporter] = None,
) -> str:
    """Stage 3: A single streamed chairman call; any failure is fatal."""
    reporter = reporter or ProgressReporter()
    chairman = config.chairman_model
    prompt = build_synthesis_prompt(
        user_query,
        stage1_results,
        stage2_results,
        aggregate_rankings,
        format_history_context(conversation_history, config.history_limit),
    )
    messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]

    logger.info("Stage 3: chairman %s synthesizing", chairman)
    await reporter.report(CouncilStage.STAGE3, chairman, 0)
    try:
        final_response = await asyncio.wait_for(
            client.complete(chairman, messages, on_chunk=on_chunk, temperature=config.stage3_temperature),
            timeout=config.chairman_timeout,
        )
    except asyncio.TimeoutError as e:
        logger.error("Stage 3: chairman %s timed out after %.0fs", chairman, config.chairman_timeout)
        raise ChairmanSynthesisError(chairman, "timed out") from e
    except Exception as e:
        logger.error("Stage 3: chairman %s failed: %s", chairman, e)
        raise ChairmanSynthesisError(chairman, str(e)) from e

    if not final_response or not final_response.strip():
        logger.error("Stage 3: chairman %s returned an empty synthesis", chairman)
        raise ChairmanSynthesisError(chairman, "empty response")

    await reporter.report(CouncilStage.STAGE3, chairman, 100)
    logger.info("Stage 3 complete: chairman synthesis finished")
    return final_response
