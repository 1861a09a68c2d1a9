"""Tests for the run orchestrator."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from calltest.config import CallTestConfig
from calltest.evaluator import EvaluationResult
from calltest.events import ProgressEvent
from calltest.models import (
    AgentConfig,
    CriterionResult,
    CriterionType,
    EndReason,
    ResultStatus,
    RunStatus,
    SuccessCriterion,
    Temperament,
    TestCase,
    TestRun,
    TranscriptMessage,
    TranscriptRole,
)
from calltest.persistence import InMemoryResultStore
from calltest.personas import DEFAULT_PERSONA, PRESET_PERSONAS
from calltest.runner import (
    TestRunner,
    average_score,
    estimate_cost_cents,
    prepare_run,
    run_suite,
)
from calltest.simulator import SimulationResult
from calltest.utils.errors import RunStateError, ValidationError


def make_case(name: str, sort_order: int = 0, **kwargs: object) -> TestCase:
    return TestCase(
        id=f"case-{name}",
        name=name,
        scenario=name,
        success_criteria=[SuccessCriterion(criterion="Greets the caller")],
        sort_order=sort_order,
        **kwargs,
    )


def transcript() -> list[TranscriptMessage]:
    return [
        TranscriptMessage(role=TranscriptRole.AGENT, content="Hello!", turn=0),
        TranscriptMessage(role=TranscriptRole.CALLER, content="Bye. ", turn=1),
    ]


class FakeSimulator:
    """Simulator stand-in keyed by scenario.

    ``behaviors`` maps a scenario to a delay in seconds, an exception to
    raise, or a SimulationResult to return.
    """

    def __init__(self, behaviors: dict[str, object] | None = None, delay: float = 0.0) -> None:
        self.behaviors = behaviors or {}
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.calls: list[tuple[str, object, int]] = []

    async def simulate(self, agent, persona, scenario, max_turns, on_turn=None) -> SimulationResult:
        self.calls.append((scenario, persona, max_turns))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            behavior = self.behaviors.get(scenario, self.delay)
            if isinstance(behavior, Exception):
                raise behavior
            if isinstance(behavior, SimulationResult):
                return behavior
            await asyncio.sleep(behavior)
            return SimulationResult(
                transcript=transcript(),
                end_reason=EndReason.PERSONA_ENDED,
                input_tokens=100,
                output_tokens=20,
            )
        finally:
            self.active -= 1


def make_evaluator(scores: dict[str, EvaluationResult | None] | None = None) -> MagicMock:
    """Evaluator mock returning a result per scenario (default: pass at 80)."""
    scores = scores or {}

    async def evaluate(transcript, criteria, scenario, agent_prompt):
        if scenario in scores:
            return scores[scenario]
        return evaluation(80, passed=True)

    evaluator = MagicMock()
    evaluator.evaluate = AsyncMock(side_effect=evaluate)
    return evaluator


def evaluation(score: int, passed: bool) -> EvaluationResult:
    return EvaluationResult(
        criteria_results=[
            CriterionResult(
                criterion="Greets the caller",
                type=CriterionType.MUST_PASS,
                passed=passed,
                reasoning="r",
            )
        ],
        overall_score=score,
        summary="summary",
        input_tokens=400,
        output_tokens=100,
    )


class EventLog:
    """Progress sink that records events."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [e.type for e in self.events]


@pytest.fixture
def store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture
def agent() -> AgentConfig:
    return AgentConfig(system_prompt="You are a helpful receptionist.", first_message="Hello!")


async def execute(
    runner: TestRunner,
    store: InMemoryResultStore,
    cases: list[TestCase],
    agent: AgentConfig,
    sink: EventLog | None = None,
) -> TestRun:
    run, active = await prepare_run(store, cases, prompt_tested=agent.system_prompt)
    return await run_suite(runner, run.id, active, agent, store, sink or EventLog())


class TestAggregation:
    """Tests for score and cost aggregation helpers."""

    def test_average_score(self) -> None:
        assert average_score([80, 75, 91]) == 82.0
        assert average_score([1, 1, 2]) == 1.33
        assert average_score([]) is None

    def test_cost_is_rounded_up_to_cents(self) -> None:
        assert estimate_cost_cents(0, 0) == 0
        assert estimate_cost_cents(1000, 240) == 1
        assert estimate_cost_cents(1_000_000, 1_000_000) == 600

    def test_custom_prices(self) -> None:
        assert estimate_cost_cents(2_000_000, 0, input_price_per_million=3.0) == 600


class TestRunnerInit:
    """Tests for TestRunner construction."""

    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(ValueError, match="max_concurrency"):
            TestRunner(FakeSimulator(), make_evaluator(), max_concurrency=0)

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="case_timeout"):
            TestRunner(FakeSimulator(), make_evaluator(), case_timeout=0)

    async def test_from_config(self, store: InMemoryResultStore, agent: AgentConfig) -> None:
        config = CallTestConfig(
            max_concurrency=2, case_timeout_seconds=0.1, input_price_per_million=300.0
        )
        simulator = FakeSimulator({"c0": 1.0}, delay=0.02)
        cases = [make_case(f"c{i}", i) for i in range(5)]
        runner = TestRunner.from_config(config, simulator, make_evaluator())

        run = await execute(runner, store, cases, agent)

        assert simulator.max_active == 2
        timed_out = await store.get_result(run.id, "case-c0")
        assert timed_out.error_message == 'Timeout: simulation for "c0" exceeded 100ms'
        # 4 * (100 + 400) input and 4 * (20 + 100) output tokens
        assert run.estimated_cost_cents == 61


class TestExecuteRun:
    """Tests for TestRunner.execute_run."""

    async def test_three_cases_with_one_timeout(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        """K=2, the second case times out, the others pass and fail."""
        cases = [make_case("first", 0), make_case("slow", 1), make_case("third", 2)]
        simulator = FakeSimulator({"first": 0.01, "slow": 5.0, "third": 0.01})
        evaluator = make_evaluator({"third": evaluation(40, passed=False)})
        runner = TestRunner(simulator, evaluator, max_concurrency=2, case_timeout=0.2)
        sink = EventLog()

        run = await execute(runner, store, cases, agent, sink)

        assert run.status == RunStatus.COMPLETED
        assert (run.total_cases, run.passed_cases, run.failed_cases, run.errored_cases) == (
            3,
            1,
            1,
            1,
        )
        assert run.avg_score == 60.0
        assert run.total_input_tokens == 1000
        assert run.total_output_tokens == 240
        assert run.estimated_cost_cents == 1
        assert run.started_at is not None
        assert run.completed_at is not None
        assert run.duration_ms is not None

        slow = await store.get_result(run.id, "case-slow")
        assert slow.status == ResultStatus.ERRORED
        assert slow.error_message == 'Timeout: simulation for "slow" exceeded 200ms'
        assert slow.overall_score is None
        assert slow.duration_ms is not None
        assert slow.duration_ms >= 200

        third = await store.get_result(run.id, "case-third")
        assert third.status == ResultStatus.FAILED
        assert third.overall_score == 40
        assert third.end_reason == EndReason.PERSONA_ENDED
        assert third.turn_count == 2
        assert third.input_tokens == 500
        assert third.output_tokens == 120

        assert sink.types[0] == "started"
        assert sink.types[-1] == "complete"
        assert sink.types.count("case_started") == 3
        assert sink.types.count("case_completed") == 3
        progress = [e for e in sink.events if e.type == "progress"]
        assert [p.completed for p in progress] == [1, 2, 3]
        assert all(p.total == 3 for p in progress)

        complete = sink.events[-1]
        assert (complete.passed, complete.failed, complete.errored) == (1, 1, 1)
        assert complete.avg_score == 60.0

    async def test_events_are_ordered_per_case(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        cases = [make_case("long", 0), make_case("short", 1), make_case("boom", 2)]
        simulator = FakeSimulator({"long": 0.03, "short": 0.01, "boom": RuntimeError("down")})
        runner = TestRunner(simulator, make_evaluator(), max_concurrency=2)
        sink = EventLog()

        await execute(runner, store, cases, agent, sink)

        for case in cases:
            positions = {
                e.type: i for i, e in enumerate(sink.events) if getattr(e, "case_id", None) == case.id
            }
            assert set(positions) == {"case_started", "case_completed"}
            assert positions["case_started"] < positions["case_completed"]
            following = sink.events[positions["case_completed"] + 1]
            assert following.type == "progress"
        assert sink.types.index("complete") == len(sink.events) - 1

    async def test_concurrency_is_bounded(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        cases = [make_case(f"c{i}", i) for i in range(6)]
        simulator = FakeSimulator(delay=0.02)
        runner = TestRunner(simulator, make_evaluator(), max_concurrency=2)

        await execute(runner, store, cases, agent)

        assert simulator.max_active == 2
        assert len(simulator.calls) == 6

    async def test_every_result_is_terminal(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        cases = [make_case("ok", 0), make_case("boom", 1), make_case("unscored", 2)]
        simulator = FakeSimulator({"boom": RuntimeError("socket closed")})
        evaluator = make_evaluator({"unscored": None})
        runner = TestRunner(simulator, evaluator)

        run = await execute(runner, store, cases, agent)

        results = {r.case_id: r for r in await store.list_results(run.id)}
        assert all(r.status.is_terminal for r in results.values())
        assert all(r.completed_at is not None for r in results.values())
        assert results["case-boom"].status == ResultStatus.ERRORED
        assert results["case-boom"].error_message == "socket closed"
        assert results["case-unscored"].status == ResultStatus.FAILED
        assert results["case-unscored"].overall_score is None
        assert run.avg_score == 80.0

    async def test_simulation_error_keeps_transcript(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        partial = SimulationResult(
            transcript=transcript()[:1],
            end_reason=EndReason.ERROR,
            error="anthropic: overloaded",
            input_tokens=30,
            output_tokens=10,
        )
        evaluator = make_evaluator()
        runner = TestRunner(FakeSimulator({"flaky": partial}), evaluator)

        run = await execute(runner, store, [make_case("flaky")], agent)

        result = await store.get_result(run.id, "case-flaky")
        assert result.status == ResultStatus.ERRORED
        assert result.error_message == "anthropic: overloaded"
        assert result.end_reason == EndReason.ERROR
        assert len(result.transcript) == 1
        assert run.errored_cases == 1
        assert run.total_input_tokens == 30
        assert run.avg_score is None
        evaluator.evaluate.assert_not_called()

    async def test_defaults_persona_and_passes_max_turns(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        angry = PRESET_PERSONAS[Temperament.ANGRY]
        cases = [make_case("plain", 0, max_turns=4), make_case("angry", 1, persona=angry)]
        simulator = FakeSimulator()
        runner = TestRunner(simulator, make_evaluator())

        run = await execute(runner, store, cases, agent)

        seen = {scenario: (persona, max_turns) for scenario, persona, max_turns in simulator.calls}
        assert seen["plain"] == (DEFAULT_PERSONA, 4)
        assert seen["angry"][0] == angry
        result = await store.get_result(run.id, "case-angry")
        assert result.persona_id == angry.id

    async def test_failing_progress_sink_does_not_abort(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        def broken_sink(event: ProgressEvent) -> None:
            raise RuntimeError("client went away")

        runner = TestRunner(FakeSimulator(), make_evaluator())
        run, active = await prepare_run(store, [make_case("a")], prompt_tested="p")

        final = await run_suite(runner, run.id, active, agent, store, broken_sink)

        assert final.status == RunStatus.COMPLETED
        assert final.passed_cases == 1


class TestPrepareRun:
    """Tests for prepare_run."""

    async def test_only_active_cases_in_sort_order(self, store: InMemoryResultStore) -> None:
        cases = [
            make_case("b", 2),
            make_case("skip", 0, is_active=False),
            make_case("a", 1),
        ]

        run, active = await prepare_run(store, cases, prompt_tested="prompt", suite_id="suite-1")

        assert [c.name for c in active] == ["a", "b"]
        assert run.status == RunStatus.PENDING
        assert run.total_cases == 2
        assert run.suite_id == "suite-1"
        assert run.prompt_tested == "prompt"
        results = await store.list_results(run.id)
        assert {r.case_id for r in results} == {"case-a", "case-b"}
        assert all(r.status == ResultStatus.PENDING for r in results)

    async def test_no_active_cases(self, store: InMemoryResultStore) -> None:
        with pytest.raises(ValidationError, match="No active test cases"):
            await prepare_run(store, [make_case("skip", is_active=False)], prompt_tested="p")


class TestRunSuite:
    """Tests for run_suite."""

    async def test_refuses_non_pending_run(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        run, active = await prepare_run(store, [make_case("a")], prompt_tested="p")
        await store.update_run(run.id, status=RunStatus.COMPLETED)
        runner = TestRunner(FakeSimulator(), make_evaluator())

        with pytest.raises(RunStateError, match="completed"):
            await run_suite(runner, run.id, active, agent, store, EventLog())

    async def test_orchestrator_crash_marks_run_failed(
        self, store: InMemoryResultStore, agent: AgentConfig
    ) -> None:
        run, active = await prepare_run(store, [make_case("a")], prompt_tested="p")
        runner = MagicMock()
        runner.execute_run = AsyncMock(side_effect=RuntimeError("store unavailable"))

        with pytest.raises(RuntimeError, match="store unavailable"):
            await run_suite(runner, run.id, active, agent, store, EventLog())

        failed = await store.get_run(run.id)
        assert failed.status == RunStatus.FAILED
        assert failed.completed_at is not None
