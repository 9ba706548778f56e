"""End-to-end council run: collect, review, aggregate, synthesize."""

import logging
from typing import List, Dict, Any, Optional, Sequence

from ..config import get_council_config
from ..config_loader import CouncilConfig
from ..providers import get_default_client
from ..providers.base import CompletionClient
from .models import CouncilOutcome
from .ranking import calculate_aggregate_rankings
from .stage1 import stage1_collect_responses
from .stage2 import stage2_collect_rankings
from .stage3 import stage3_synthesize_final
from .utils import ChunkCallback, ProgressCallback, ProgressReporter

logger = logging.getLogger(__name__)


class CouncilPipeline:
    """Runs the three council stages with injected config and client.

    Holds no per-run state, so one instance can serve concurrent requests.
    """

    def __init__(self, config: CouncilConfig, client: CompletionClient):
        self.config = config
        self.client = client

    async def run(
        self,
        user_query: str,
        conversation_history: Optional[Sequence[Dict[str, Any]]] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_chunk: Optional[ChunkCallback] = None,
    ) -> CouncilOutcome:
        """Run the full council process.

        Raises NoCouncilResponsesError when no council member answers and
        ChairmanSynthesisError when the chairman call fails. Every other
        per-model failure is logged and absorbed.
        """
        history: List[Dict[str, Any]] = list(conversation_history or [])
        reporter = ProgressReporter(on_progress)
        logger.info("=== Starting Council Process (%d models) ===", len(self.config.council_models))

        stage1_results = await stage1_collect_responses(
            user_query, self.client, self.config,
            conversation_history=history, reporter=reporter,
        )

        stage2_results, label_to_model = await stage2_collect_rankings(
            user_query, stage1_results, self.client, self.config,
            conversation_history=history, reporter=reporter,
        )

        aggregate_rankings = calculate_aggregate_rankings(stage2_results, label_to_model)

        final_response = await stage3_synthesize_final(
            user_query, stage1_results, stage2_results, aggregate_rankings,
            self.client, self.config,
            conversation_history=history, on_chunk=on_chunk, reporter=reporter,
        )

        logger.info("=== Council Process Complete ===")
        return CouncilOutcome(
            chairman_model=self.config.chairman_model,
            final_response=final_response,
            stage1_results=stage1_results,
            stage2_results=stage2_results,
            label_to_model=label_to_model,
            aggregate_rankings=aggregate_rankings,
        )


async def run_council_process(
    user_query: str,
    conversation_history: Optional[Sequence[Dict[str, Any]]] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_chunk: Optional[ChunkCallback] = None,
    *,
    config: Optional[CouncilConfig] = None,
    client: Optional[CompletionClient] = None,
) -> str:
    """Run the council and return the chairman's final answer text."""
    pipeline = CouncilPipeline(
        config or get_council_config(),
        client or get_default_client(),
    )
    outcome = await pipeline.run(
        user_query,
        conversation_history=conversation_history,
        on_progress=on_progress,
        on_chunk=on_chunk,
    )
    return outcome.final_response
