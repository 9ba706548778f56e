"""Stage 1: Collect individual responses from council members."""

import asyncio
import logging
from typing import List, Dict, Any, Optional, Sequence

from ..config_loader import CouncilConfig
from ..providers.base import CompletionClient
from .errors import NoCouncilResponsesError
from .models import CouncilStage, Stage1Result
from .utils import ProgressReporter, build_history_messages

logger = logging.getLogger(__name__)


async def stage1_collect_responses(
    user_query: str,
    client: CompletionClient,
    config: CouncilConfig,
    conversation_history: Optional[Sequence[Dict[str, Any]]] = None,
    reporter: Optional[ProgressReporter] = None,
) -> List[Stage1Result]:
    """Stage 1: Ask every council model the question in parallel.

    Waits for every model to settle. Failed, timed out and blank answers are
    dropped; raises NoCouncilResponsesError if nothing usable remains.
    """
    reporter = reporter or ProgressReporter()
    models = config.council_models
    messages = build_history_messages(conversation_history)
    messages.append({"role": "user", "content": user_query})

    logger.info("Stage 1: collecting responses from %d council models", len(models))

    async def query_member(model: str) -> Optional[Stage1Result]:
        await reporter.report(CouncilStage.STAGE1, model, 0)
        try:
            response = await asyncio.wait_for(
                client.complete(model, list(messages), temperature=config.stage1_temperature),
                timeout=config.model_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Stage 1: %s timed out after %.0fs", model, config.model_timeout)
            return None
        except Exception as e:
            logger.warning("Stage 1: %s failed: %s", model, e)
            return None
        await reporter.report(CouncilStage.STAGE1, model, 100)
        logger.debug("Stage 1: %s completed", model)
        return Stage1Result(model=model, response=response or "")

    responses = await asyncio.gather(*(query_member(m) for m in models))

    results = [r for r in responses if r is not None and r.response.strip()]
    logger.info("Stage 1 complete: %d/%d models succeeded", len(results), len(models))

    if not results:
        raise NoCouncilResponsesError(len(models))
    return results
