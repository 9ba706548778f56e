"""Tests for the individual council stages."""

import asyncio
import dataclasses

import pytest

from backend.council.errors import ChairmanSynthesisError, LabelCapacityError, NoCouncilResponsesError
from backend.council.models import AggregateRanking, Stage1Result, Stage2Result
from backend.council.ranking import parse_ranking_from_text
from backend.council.stage1 import stage1_collect_responses
from backend.council.stage2 import anonymize_responses, build_ranking_prompt, stage2_collect_rankings
from backend.council.stage3 import build_synthesis_prompt, stage3_synthesize_final
from backend.council.utils import ProgressReporter, build_history_messages
from tests.conftest import (
    CHAIRMAN,
    COUNCIL,
    FakeCompletionClient,
    completion_error,
    council_script,
    ranking_reply,
)


def _recorder():
    events = []

    def on_progress(stage, model, progress):
        events.append((stage, model, progress))

    return events, ProgressReporter(on_progress)


# ============== Stage 1 ==============


async def test_stage1_collects_all_responses_in_council_order(council_config, fake_client):
    results = await stage1_collect_responses("What is 2+2?", fake_client, council_config)
    assert [r.model for r in results] == list(COUNCIL)
    assert results[0] == Stage1Result(model=COUNCIL[0], response=f"Answer from {COUNCIL[0]}")


async def test_stage1_appends_query_after_history(council_config, fake_client):
    history = [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
    ]
    await stage1_collect_responses("Next question", fake_client, council_config, history)
    messages = fake_client.calls[0]["messages"]
    assert messages == [
        {"role": "user", "content": "Hi"},
        {"role": "assistant", "content": "Hello!"},
        {"role": "user", "content": "Next question"},
    ]


async def test_stage1_sends_entire_history(council_config, fake_client):
    history = [
        {"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"}
        for i in range(10)
    ]
    await stage1_collect_responses("latest", fake_client, council_config, history)
    for call in fake_client.calls:
        assert call["messages"] == history + [{"role": "user", "content": "latest"}]


async def test_stage1_drops_failed_and_blank_responses(council_config):
    client = FakeCompletionClient(council_script(stage1={
        COUNCIL[0]: completion_error(COUNCIL[0]),
        COUNCIL[1]: "   \n",
        COUNCIL[2]: RuntimeError("malformed stream"),
    }))
    results = await stage1_collect_responses("q", client, council_config)
    assert results == [Stage1Result(model=COUNCIL[3], response=f"Answer from {COUNCIL[3]}")]


async def test_stage1_raises_when_nobody_answers(council_config):
    client = FakeCompletionClient(lambda model, messages: completion_error(model))
    with pytest.raises(NoCouncilResponsesError):
        await stage1_collect_responses("q", client, council_config)


async def test_stage1_timeout_does_not_block_siblings(council_config):
    config = dataclasses.replace(council_config, model_timeout=0.05)
    client = FakeCompletionClient(council_script(), delays={COUNCIL[1]: 1.0})
    results = await stage1_collect_responses("q", client, config)
    assert [r.model for r in results] == [COUNCIL[0], COUNCIL[2], COUNCIL[3]]


async def test_stage1_reports_progress_for_successes_only(council_config):
    client = FakeCompletionClient(council_script(stage1={COUNCIL[0]: completion_error(COUNCIL[0])}))
    events, reporter = _recorder()
    await stage1_collect_responses("q", client, council_config, reporter=reporter)

    assert sorted(m for s, m, p in events if p == 0) == sorted(COUNCIL)
    assert sorted(m for s, m, p in events if p == 100) == sorted(COUNCIL[1:])
    assert {s for s, _, _ in events} == {"stage1"}


async def test_stage1_runs_models_concurrently(council_config):
    client = FakeCompletionClient(council_script(), delays={m: 0.2 for m in COUNCIL})
    loop = asyncio.get_running_loop()
    started = loop.time()
    await stage1_collect_responses("q", client, council_config)
    assert loop.time() - started < 0.6


async def test_progress_callback_failure_is_absorbed(council_config, fake_client):
    def broken(stage, model, progress):
        raise ValueError("sink closed")

    results = await stage1_collect_responses(
        "q", fake_client, council_config, reporter=ProgressReporter(broken)
    )
    assert len(results) == len(COUNCIL)


async def test_async_progress_callback_is_awaited(council_config, fake_client):
    events = []

    async def on_progress(stage, model, progress):
        await asyncio.sleep(0)
        events.append((stage, model, progress))

    await stage1_collect_responses("q", fake_client, council_config, reporter=ProgressReporter(on_progress))
    assert len(events) == 2 * len(COUNCIL)


def test_history_is_trimmed_and_normalized():
    history = [
        {"role": "user", "content": "one"},
        {"role": "tool", "content": "ignored"},
        {"role": "assistant", "content": ""},
        {"role": "Assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]
    assert build_history_messages(history, 2) == [
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]
    assert build_history_messages(history, 0) == []
    assert build_history_messages(None, 6) == []
    assert len(build_history_messages(history)) == 3


# ============== Stage 2 ==============


def _stage1(*models):
    return [Stage1Result(model=m, response=f"Answer from {m}") for m in models]


def test_anonymize_assigns_labels_by_position():
    anonymized, label_to_model = anonymize_responses(_stage1("m1", "m2", "m3"))
    assert [a.label for a in anonymized] == ["Response A", "Response B", "Response C"]
    assert list(label_to_model.items()) == [
        ("Response A", "m1"), ("Response B", "m2"), ("Response C", "m3"),
    ]
    assert [a.response for a in anonymized] == ["Answer from m1", "Answer from m2", "Answer from m3"]


def test_anonymize_label_map_is_bijective_and_frozen():
    stage1 = _stage1(*COUNCIL)
    anonymized, label_to_model = anonymize_responses(stage1)
    assert len(anonymized) == len(label_to_model) == len(stage1)
    assert len(set(label_to_model.values())) == len(stage1)
    with pytest.raises(TypeError):
        label_to_model["Response Z"] = "intruder"


def test_anonymize_rejects_more_than_26_responses():
    with pytest.raises(LabelCapacityError):
        anonymize_responses(_stage1(*[f"m{i}" for i in range(27)]))


def test_anonymize_accepts_exactly_26_responses():
    _, label_to_model = anonymize_responses(_stage1(*[f"m{i}" for i in range(26)]))
    assert "Response Z" in label_to_model


def test_ranking_prompt_hides_model_identity():
    anonymized, _ = anonymize_responses([
        Stage1Result(model="openai/gpt-5.1", response="Use YAML."),
        Stage1Result(model="x-ai/grok-4", response="Use JSON."),
    ])
    prompt = build_ranking_prompt("YAML or JSON?", anonymized)
    assert "openai/gpt-5.1" not in prompt
    assert "x-ai/grok-4" not in prompt
    assert "Response A:\nUse YAML." in prompt
    assert "Response B:\nUse JSON." in prompt
    assert "YAML or JSON?" in prompt
    assert "FINAL RANKING:" in prompt


async def test_stage2_sends_identical_prompt_to_every_model(council_config, fake_client):
    results, label_to_model = await stage2_collect_rankings(
        "q", _stage1(COUNCIL[0], COUNCIL[1]), fake_client, council_config
    )
    prompts = {c["messages"][-1]["content"] for c in fake_client.calls}
    assert len(prompts) == 1
    assert sorted(c["model"] for c in fake_client.calls) == sorted(COUNCIL)
    assert len(results) == len(COUNCIL)
    assert dict(label_to_model) == {"Response A": COUNCIL[0], "Response B": COUNCIL[1]}


async def test_stage2_filters_labels_outside_run(council_config, fake_client):
    results, _ = await stage2_collect_rankings(
        "q", _stage1(COUNCIL[0], COUNCIL[1]), fake_client, council_config
    )
    for result in results:
        assert result.parsed_ranking == ("Response A", "Response B")


async def test_stage2_keeps_unparseable_reviews(council_config):
    client = FakeCompletionClient(council_script(stage2={COUNCIL[0]: "They are all fine."}))
    results, _ = await stage2_collect_rankings("q", _stage1(COUNCIL[1]), client, council_config)
    by_model = {r.model: r for r in results}
    assert by_model[COUNCIL[0]].parsed_ranking == ()
    assert by_model[COUNCIL[0]].ranking_text == "They are all fine."


async def test_stage2_total_failure_is_not_fatal(council_config):
    client = FakeCompletionClient(council_script(stage2={m: completion_error(m) for m in COUNCIL}))
    events, reporter = _recorder()
    results, label_to_model = await stage2_collect_rankings(
        "q", _stage1(COUNCIL[0]), client, council_config, reporter=reporter
    )
    assert results == []
    assert dict(label_to_model) == {"Response A": COUNCIL[0]}
    assert [p for _, _, p in events] == [0, 0, 0, 0]


async def test_stage2_timeout_does_not_block_other_reviewers(council_config):
    config = dataclasses.replace(council_config, model_timeout=0.05)
    client = FakeCompletionClient(council_script(), delays={COUNCIL[2]: 1.0})
    events, reporter = _recorder()
    results, _ = await stage2_collect_rankings(
        "q", _stage1(COUNCIL[0], COUNCIL[1]), client, config, reporter=reporter
    )
    assert sorted(r.model for r in results) == sorted(m for m in COUNCIL if m != COUNCIL[2])
    assert sorted(m for _, m, p in events if p == 100) == sorted(m for m in COUNCIL if m != COUNCIL[2])


async def test_stage2_runs_reviews_concurrently(council_config):
    client = FakeCompletionClient(council_script(), delays={m: 0.2 for m in COUNCIL})
    loop = asyncio.get_running_loop()
    started = loop.time()
    results, _ = await stage2_collect_rankings("q", _stage1(COUNCIL[0]), client, council_config)
    assert loop.time() - started < 0.6
    assert len(results) == len(COUNCIL)


# ============== Stage 3 ==============


def test_synthesis_prompt_reveals_identities_and_summary():
    stage1 = _stage1("m1", "m2")
    stage2 = [Stage2Result(model="m2", ranking_text="B is better.\nFINAL RANKING:\n1. Response B", parsed_ranking=("Response B",))]
    rankings = [AggregateRanking(model="m2", average_rank=1.0, rankings_count=1)]
    prompt = build_synthesis_prompt("q?", stage1, stage2, rankings)
    assert "Model: m1\nResponse: Answer from m1" in prompt
    assert "Model: m2\nRanking: B is better." in prompt
    assert "1. m2 (avg rank: 1.00)" in prompt
    assert "ORIGINAL QUESTION:\nq?" in prompt


def test_synthesis_prompt_without_rankings():
    prompt = build_synthesis_prompt("q?", _stage1("m1"), [], [])
    assert "No peer rankings were available" in prompt
    assert "No peer reviews were collected." in prompt


async def test_stage3_streams_chunks_in_order(council_config, fake_client):
    chunks = []
    final = await stage3_synthesize_final(
        "q", _stage1(COUNCIL[0]), [], [], fake_client, council_config, on_chunk=chunks.append
    )
    assert final == "The council concludes: use both."
    assert "".join(chunks).strip() == final
    assert fake_client.calls[0]["model"] == CHAIRMAN


async def test_stage3_failure_is_fatal(council_config):
    client = FakeCompletionClient(council_script(chairman=completion_error(CHAIRMAN)))
    with pytest.raises(ChairmanSynthesisError) as excinfo:
        await stage3_synthesize_final("q", _stage1(COUNCIL[0]), [], [], client, council_config)
    assert excinfo.value.model == CHAIRMAN


async def test_stage3_timeout_is_fatal(council_config):
    config = dataclasses.replace(council_config, chairman_timeout=0.05)
    client = FakeCompletionClient(council_script(), delays={CHAIRMAN: 1.0})
    with pytest.raises(ChairmanSynthesisError):
        await stage3_synthesize_final("q", _stage1(COUNCIL[0]), [], [], client, config)


async def test_stage3_empty_synthesis_is_fatal(council_config):
    client = FakeCompletionClient(council_script(chairman=""))
    with pytest.raises(ChairmanSynthesisError):
        await stage3_synthesize_final("q", _stage1(COUNCIL[0]), [], [], client, council_config)


def test_ranking_reply_helper_round_trips_through_parser():
    assert parse_ranking_from_text(ranking_reply("C", "A")) == ["Response C", "Response A"]
