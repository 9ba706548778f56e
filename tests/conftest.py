"""Shared pytest fixtures."""

import asyncio
from typing import Callable, Dict, List, Optional, Union

import pytest

from backend.config_loader import CouncilConfig
from backend.providers.base import CompletionClient, CompletionError

COUNCIL = ("openai/gpt-5.1", "google/gemini-3-pro-preview", "anthropic/claude-sonnet-4.5", "x-ai/grok-4")
CHAIRMAN = "google/gemini-3-pro-preview"

Reply = Union[str, Exception, Callable[[List[Dict[str, str]]], str]]


def ranking_reply(*letters: str) -> str:
    lines = "\n".join(f"{i}. Response {letter}" for i, letter in enumerate(letters, start=1))
    return f"Response A is solid. Response B misses details.\n\nFINAL RANKING:\n{lines}"


def is_ranking_prompt(messages: List[Dict[str, str]]) -> bool:
    return "RESPONSES TO EVALUATE" in messages[-1]["content"]


def is_synthesis_prompt(messages: List[Dict[str, str]]) -> bool:
    return "chairman of an AI council" in messages[-1]["content"]


class FakeCompletionClient(CompletionClient):
    """Scripted CompletionClient.

    `script` maps model id to a reply: a string, an exception to raise, or a
    callable receiving the messages. Replies are streamed word by word.
    """

    def __init__(self, script: Optional[Callable[[str, List[Dict[str, str]]], Reply]] = None, delays: Optional[Dict[str, float]] = None):
        self.script = script or (lambda model, messages: f"Answer from {model}")
        self.delays = delays or {}
        self.calls: List[Dict[str, object]] = []

    async def complete(self, model, messages, on_chunk=None, temperature=None):
        self.calls.append({"model": model, "messages": messages, "temperature": temperature})
        delay = self.delays.get(model)
        if delay:
            await asyncio.sleep(delay)
        reply = self.script(model, messages)
        if callable(reply):
            reply = reply(messages)
        if isinstance(reply, Exception):
            raise reply
        if on_chunk:
            for piece in reply.split(" "):
                on_chunk(piece + " ")
        return reply

    def calls_for(self, predicate: Callable[[List[Dict[str, str]]], bool]) -> List[Dict[str, object]]:
        return [c for c in self.calls if predicate(c["messages"])]


def council_script(
    stage1: Optional[Dict[str, Reply]] = None,
    stage2: Optional[Dict[str, Reply]] = None,
    chairman: Reply = "The council concludes: use both.",
) -> Callable[[str, List[Dict[str, str]]], Reply]:
    stage1 = stage1 or {}
    stage2 = stage2 or {}

    def script(model: str, messages: List[Dict[str, str]]) -> Reply:
        if is_synthesis_prompt(messages):
            return chairman
        if is_ranking_prompt(messages):
            return stage2.get(model, ranking_reply("A", "B", "C", "D"))
        return stage1.get(model, f"Answer from {model}")

    return script


@pytest.fixture
def council_config() -> CouncilConfig:
    return CouncilConfig(
        council_models=COUNCIL,
        chairman_model=CHAIRMAN,
        model_timeout=5.0,
        chairman_timeout=5.0,
        history_limit=6,
    )


@pytest.fixture
def fake_client() -> FakeCompletionClient:
    return FakeCompletionClient(council_script())


def completion_error(model: str) -> CompletionError:
    return CompletionError(model, "backend unavailable")
