"""Unit tests for the generation orchestrator."""

import pytest

from personasim.gateway import LanguageModelGateway
from personasim.generation.orchestrator import GenerationOrchestrator, GenerationRequest
from personasim.llm_clients import FakeCompletionClient
from personasim.models import GenerationOptions, ResponseQuality, ScenarioContext, TicketContext
from personasim.resilience.circuit_breaker import CircuitBreaker
from personasim.resilience.errors import (
    CircuitOpenError,
    ErrorKind,
    FatalUpstreamError,
    GenerationUnavailableError,
)


def _quality(score: int) -> ResponseQuality:
    return ResponseQuality(
        score=score,
        character_consistency=score,
        appropriateness=score,
        naturalness=score,
        technical_accuracy=score,
        issues=[] if score >= 70 else ["Response too short"],
    )


class ScriptedScorer:
    def __init__(self, *scores: int) -> None:
        self.scores = list(scores)
        self.seen: list[str] = []

    def __call__(self, content, persona, user_message):
        self.seen.append(content)
        return _quality(self.scores.pop(0))


@pytest.fixture
def orchestrator_factory(gateway, conversation_store, tracker):
    def _build(scorer, **kwargs):
        return GenerationOrchestrator(
            gateway, conversation_store, tracker, quality_scorer=scorer, **kwargs
        )

    return _build


def _request(persona, **kwargs):
    return GenerationRequest(
        conversation_id="conv-1", user_message="Did you try restarting?", persona=persona, **kwargs
    )


@pytest.mark.asyncio
async def test_passing_candidate_returns_after_one_call(orchestrator_factory, fake_client, calm_persona):
    orchestrator = orchestrator_factory(ScriptedScorer(90))

    scored = await orchestrator.generate_scored(_request(calm_persona))

    assert fake_client.call_count == 1
    assert scored.attempts == 1
    assert scored.quality.score == 90


@pytest.mark.asyncio
async def test_best_candidate_returned_when_none_pass(orchestrator_factory, fake_client, calm_persona):
    fake_client.script.extend(["first try", "second try", "third try"])
    orchestrator = orchestrator_factory(ScriptedScorer(50, 65, 40))

    scored = await orchestrator.generate_scored(_request(calm_persona))

    assert fake_client.call_count == 3
    assert scored.completion.content == "second try"
    assert scored.quality.score == 65
    assert scored.attempts == 3
    assert orchestrator.generation_metrics()["regeneration_rate"] == 1.0


@pytest.mark.asyncio
async def test_attempts_escalate_sampling(orchestrator_factory, fake_client, calm_persona):
    orchestrator = orchestrator_factory(ScriptedScorer(10, 10, 10))

    await orchestrator.generate_scored(_request(calm_persona, options=GenerationOptions(temperature=0.85)))

    temperatures = [call["temperature"] for call in fake_client.calls]
    assert temperatures == pytest.approx([0.85, 0.95, 1.0])
    assert [call["max_tokens"] for call in fake_client.calls] == [1000, 1200, 1400]


@pytest.mark.asyncio
async def test_failed_attempt_is_skipped(orchestrator_factory, fake_client, calm_persona):
    fake_client.script.extend([TimeoutError("t1"), TimeoutError("t2"), "Recovered reply"])
    orchestrator = orchestrator_factory(ScriptedScorer(95))

    scored = await orchestrator.generate_scored(_request(calm_persona))

    assert scored.completion.content == "Recovered reply"
    assert scored.attempts == 2


@pytest.mark.asyncio
async def test_all_attempts_failing_raises_last_error(kv_store, conversation_store, tracker, calm_persona):
    client = FakeCompletionClient(script=[TimeoutError(f"t{i}") for i in range(6)])
    orchestrator = GenerationOrchestrator(
        LanguageModelGateway(client, cache=kv_store),
        conversation_store,
        tracker,
        quality_scorer=ScriptedScorer(),
    )

    with pytest.raises(GenerationUnavailableError):
        await orchestrator.generate_scored(_request(calm_persona))

    assert client.call_count == 6


@pytest.mark.asyncio
async def test_fatal_error_is_not_retried(orchestrator_factory, fake_client, calm_persona):
    fake_client.script.extend([FatalUpstreamError("invalid api key", kind=ErrorKind.AUTH)] * 5)
    orchestrator = orchestrator_factory(ScriptedScorer())

    with pytest.raises(GenerationUnavailableError) as exc_info:
        await orchestrator.generate_scored(_request(calm_persona))

    assert exc_info.value.kind is ErrorKind.AUTH
    assert fake_client.call_count == 1


def test_max_attempts_must_be_positive(gateway, conversation_store):
    with pytest.raises(ValueError):
        GenerationOrchestrator(gateway, conversation_store, max_attempts=0)


@pytest.mark.asyncio
async def test_open_circuit_aborts_loop(orchestrator_factory, fake_client, calm_persona, clock):
    breaker = CircuitBreaker(failure_threshold=1, timeout=60, clock=clock)

    async def _fail():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        await breaker.call(_fail)
    orchestrator = orchestrator_factory(ScriptedScorer(), breaker=breaker)

    with pytest.raises(CircuitOpenError):
        await orchestrator.generate_scored(_request(calm_persona))

    assert fake_client.call_count == 0


@pytest.mark.asyncio
async def test_build_context_persists_persona_and_initializes_memory(
    orchestrator_factory, conversation_store, tracker, beginner_persona
):
    orchestrator = orchestrator_factory(ScriptedScorer(90))
    ticket = TicketContext(id="T-9", description="Printer jammed")
    scenario = ScenarioContext(id="printer", type="hardware")

    await orchestrator.generate_scored(_request(beginner_persona, ticket=ticket, scenario=scenario))

    context = await conversation_store.get("conv-1")
    assert context.context_data.persona == beginner_persona
    assert context.context_data.ticket == ticket
    assert context.scenario_id == "printer"
    memory = await tracker.get_memory("conv-1")
    assert memory.traits == beginner_persona
    assert len(memory.behavior_history) == 1


@pytest.mark.asyncio
async def test_generate_customer_response_returns_completion(orchestrator_factory, calm_persona):
    orchestrator = orchestrator_factory(ScriptedScorer(88))

    completion = await orchestrator.generate_customer_response(_request(calm_persona))

    assert completion.conversation_id == "conv-1"
    assert completion.content


@pytest.mark.asyncio
async def test_variations(orchestrator_factory, fake_client, conversation_store, calm_persona):
    orchestrator = orchestrator_factory(ScriptedScorer())

    variations = await orchestrator.generate_variations("conv-v", "What do you see?", calm_persona, n=3)

    assert len(variations) == 3
    assert [c["temperature"] for c in fake_client.calls] == pytest.approx([0.8, 0.9, 1.0])
    assert "confused about the problem" in fake_client.calls[1]["messages"][0]["content"]
    assert "Show signs of impatience" in fake_client.calls[2]["messages"][0]["content"]
    assert await conversation_store.get("conv-v") is None


@pytest.mark.asyncio
async def test_variation_failures_are_skipped(orchestrator_factory, fake_client, calm_persona):
    fake_client.script.extend(["one", TimeoutError("x"), TimeoutError("y"), "three"])
    orchestrator = orchestrator_factory(ScriptedScorer())

    variations = await orchestrator.generate_variations("conv-v", "Hi", calm_persona, n=3)

    assert [v.content for v in variations] == ["one", "three"]


def test_vary_persona(calm_persona, beginner_persona):
    assert GenerationOrchestrator.vary_persona(calm_persona, 0) == calm_persona
    assert GenerationOrchestrator.vary_persona(calm_persona, 1).emotional_state == "confused"
    assert GenerationOrchestrator.vary_persona(calm_persona, 2).patience == "low"
    assert GenerationOrchestrator.vary_persona(beginner_persona, 1) == beginner_persona


def test_generation_metrics_start_empty(orchestrator_factory):
    metrics = orchestrator_factory(ScriptedScorer()).generation_metrics()

    assert metrics == {
        "requests": 0,
        "average_quality_score": None,
        "regeneration_rate": 0.0,
        "common_issues": [],
    }
