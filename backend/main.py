"""FastAPI backend relaying council runs as server-sent events."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import List, Dict, Any, AsyncIterator, Union

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from .config import get_council_config
from .config_loader import CouncilConfig
from .council import (
    CouncilError,
    CouncilPipeline,
    CouncilProgressEvent,
    CouncilStage,
)
from .providers import get_default_client, close_default_client

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifespan events."""
    config = get_council_config()
    logger.info("Starting LLM Council API")
    logger.info("Council models: %s", list(config.council_models))
    logger.info("Chairman: %s", config.chairman_model)
    yield
    await close_default_client()
    logger.info("Shutting down LLM Council API")


app = FastAPI(title="LLM Council", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========== Models ==========


class HistoryMessage(BaseModel):
    role: str
    content: str


class CouncilRequest(BaseModel):
    message: str = Field(min_length=1)
    history: List[HistoryMessage] = Field(default_factory=list)


def get_pipeline() -> CouncilPipeline:
    return CouncilPipeline(get_council_config(), get_default_client())


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


# ========== Council Endpoints ==========


@app.get("/api/council")
async def get_council_detail(config: CouncilConfig = Depends(get_council_config)):
    return {
        "models": list(config.council_models),
        "chairman": config.chairman_model,
    }


@app.post("/api/council/stream")
async def stream_council(request: CouncilRequest, pipeline: CouncilPipeline = Depends(get_pipeline)):
    history = [m.model_dump() for m in request.history]
    # Progress and chunk callbacks fire from concurrent tasks; a single
    # consumer drains them in arrival order.
    queue: "asyncio.Queue[Union[CouncilProgressEvent, str]]" = asyncio.Queue()

    def on_progress(stage: str, model: str, progress: int) -> None:
        queue.put_nowait(CouncilProgressEvent(CouncilStage(stage), model, progress))

    def on_chunk(chunk: str) -> None:
        queue.put_nowait(chunk)

    async def event_stream() -> AsyncIterator[str]:
        yield _sse({"status": "starting", "stage": "initialization"})

        task = asyncio.create_task(
            pipeline.run(request.message, history, on_progress=on_progress, on_chunk=on_chunk)
        )
        try:
            while True:
                getter = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                yield _format_event(getter.result())

            while not queue.empty():
                yield _format_event(queue.get_nowait())

            try:
                outcome = task.result()
            except CouncilError as e:
                logger.error("Council process error: %s", e)
                yield _sse({"error": str(e)})
                return
            except Exception:
                logger.exception("Unexpected council failure")
                yield _sse({"error": "Internal error while running the council"})
                return

            yield _sse({
                "done": True,
                "model": f"council:{outcome.chairman_model}",
                "rankings": [
                    {"model": r.model, "average_rank": round(r.average_rank, 2), "rankings_count": r.rankings_count}
                    for r in outcome.aggregate_rankings
                ],
            })
        finally:
            # Client went away: discard whatever the council was still doing.
            if not task.done():
                task.cancel()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache, no-transform", "X-Accel-Buffering": "no"},
    )


def _format_event(event: Union[CouncilProgressEvent, str]) -> str:
    if isinstance(event, CouncilProgressEvent):
        return _sse({
            "status": "progress",
            "stage": event.stage.value,
            "model": event.model,
            "progress": event.progress,
        })
    return _sse({"chunk": event})


# ========== Health Check ==========


@app.get("/api/health")
async def health_check(config: CouncilConfig = Depends(get_council_config)):
    return {
        "status": "ok",
        "models": list(config.council_models),
        "chairman": config.chairman_model,
    }
