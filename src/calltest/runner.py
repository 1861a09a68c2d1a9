"""Test run orchestrator.

Executes every case of a suite through simulation and evaluation with a
bounded number of cases in flight, persists each case result as it
resolves, and finalizes the run with aggregate counts, score and cost.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from calltest.events import (
    CaseCompletedEvent,
    CaseStartedEvent,
    CompleteEvent,
    ProgressEvent,
    ProgressSink,
    ProgressTallyEvent,
    StartedEvent,
)
from calltest.evaluator import EvaluationResult, TranscriptEvaluator, determine_pass_fail
from calltest.models import (
    AgentConfig,
    EndReason,
    ResultStatus,
    RunStatus,
    TestCase,
    TestRun,
    utcnow,
)
from calltest.personas import DEFAULT_PERSONA
from calltest.simulator import ConversationSimulator, SimulationResult
from calltest.utils.errors import RunStateError, SimulationTimeoutError, ValidationError

if TYPE_CHECKING:
    from calltest.config import CallTestConfig
    from calltest.persistence.base import ResultStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_CASE_TIMEOUT_SECONDS = 60.0
# Claude Haiku list prices, USD per million tokens
DEFAULT_INPUT_PRICE_PER_MILLION = 1.0
DEFAULT_OUTPUT_PRICE_PER_MILLION = 5.0


def estimate_cost_cents(
    input_tokens: int,
    output_tokens: int,
    input_price_per_million: float = DEFAULT_INPUT_PRICE_PER_MILLION,
    output_price_per_million: float = DEFAULT_OUTPUT_PRICE_PER_MILLION,
) -> int:
    """Estimated spend in whole cents, rounded up."""
    dollars = (
        input_tokens * input_price_per_million / 1_000_000
        + output_tokens * output_price_per_million / 1_000_000
    )
    return math.ceil(dollars * 100)


def average_score(scores: list[int]) -> float | None:
    """Mean of the scores rounded to 2 decimals, or None without scores."""
    if not scores:
        return None
    return round(sum(scores) / len(scores), 2)


@dataclass
class RunTally:
    """Run-level counters, owned by the orchestrator for one run."""

    total: int
    passed: int = 0
    failed: int = 0
    errored: int = 0
    completed: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    scores: list[int] = field(default_factory=list)

    def record(self, status: ResultStatus, score: int | None = None) -> None:
        if status == ResultStatus.PASSED:
            self.passed += 1
        elif status == ResultStatus.FAILED:
            self.failed += 1
        else:
            self.errored += 1
        if score is not None:
            self.scores.append(score)
        self.completed += 1


class TestRunner:
    """Runs a suite of cases with bounded concurrency and per-case timeouts."""

    __test__ = False

    def __init__(
        self,
        simulator: ConversationSimulator,
        evaluator: TranscriptEvaluator,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        case_timeout: float = DEFAULT_CASE_TIMEOUT_SECONDS,
        input_price_per_million: float = DEFAULT_INPUT_PRICE_PER_MILLION,
        output_price_per_million: float = DEFAULT_OUTPUT_PRICE_PER_MILLION,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if case_timeout <= 0:
            raise ValueError("case_timeout must be positive")
        self._simulator = simulator
        self._evaluator = evaluator
        self._max_concurrency = max_concurrency
        self._case_timeout = case_timeout
        self._input_price = input_price_per_million
        self._output_price = output_price_per_million

    @classmethod
    def from_config(
        cls,
        config: CallTestConfig,
        simulator: ConversationSimulator,
        evaluator: TranscriptEvaluator,
    ) -> TestRunner:
        """Create a runner with limits and prices from configuration."""
        return cls(
            simulator,
            evaluator,
            max_concurrency=config.max_concurrency,
            case_timeout=config.case_timeout_seconds,
            input_price_per_million=config.input_price_per_million,
            output_price_per_million=config.output_price_per_million,
        )

    async def execute_run(
        self,
        run: TestRun,
        cases: list[TestCase],
        agent: AgentConfig,
        store: ResultStore,
        on_progress: ProgressSink,
    ) -> None:
        """Execute all cases of a run and finalize its record.

        Returns once every case has reached passed, failed or errored.
        A failing case never aborts its siblings; its result is stored as
        errored with the error message.

        Args:
            run: The run record, already stored with pending results.
            cases: Cases to execute, one pending result each.
            agent: Prompt and greeting of the agent under test.
            store: Where run and case records are read and written.
            on_progress: Receives progress events; must not block.
        """
        start = time.monotonic()
        tally = RunTally(total=len(cases))
        logger.info(
            f"Starting run {run.id}: {len(cases)} cases, "
            f"concurrency {self._max_concurrency}, timeout {self._case_timeout}s"
        )

        await store.update_run(
            run.id,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
            total_cases=len(cases),
        )
        self._emit(on_progress, StartedEvent(total=len(cases)))

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(case: TestCase) -> None:
            async with semaphore:
                await self._run_case(run.id, case, agent, store, on_progress, tally)

        await asyncio.gather(*(bounded(case) for case in cases))

        avg_score = average_score(tally.scores)
        cost_cents = estimate_cost_cents(
            tally.input_tokens,
            tally.output_tokens,
            self._input_price,
            self._output_price,
        )
        await store.update_run(
            run.id,
            status=RunStatus.COMPLETED,
            passed_cases=tally.passed,
            failed_cases=tally.failed,
            errored_cases=tally.errored,
            avg_score=avg_score,
            completed_at=utcnow(),
            duration_ms=int((time.monotonic() - start) * 1000),
            total_input_tokens=tally.input_tokens,
            total_output_tokens=tally.output_tokens,
            estimated_cost_cents=cost_cents,
        )
        logger.info(
            f"Run {run.id} completed: {tally.passed} passed, {tally.failed} failed, "
            f"{tally.errored} errored, avg score {avg_score}"
        )
        self._emit(
            on_progress,
            CompleteEvent(
                run_id=run.id,
                passed=tally.passed,
                failed=tally.failed,
                errored=tally.errored,
                avg_score=avg_score,
            ),
        )

    async def _simulate_with_timeout(self, case: TestCase, agent: AgentConfig) -> SimulationResult:
        try:
            return await asyncio.wait_for(
                self._simulator.simulate(
                    agent,
                    case.persona or DEFAULT_PERSONA,
                    case.scenario,
                    case.max_turns,
                ),
                timeout=self._case_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SimulationTimeoutError(
                f'simulation for "{case.name}"', self._case_timeout
            ) from e

    async def _run_case(
        self,
        run_id: str,
        case: TestCase,
        agent: AgentConfig,
        store: ResultStore,
        on_progress: ProgressSink,
        tally: RunTally,
    ) -> None:
        case_start = time.monotonic()
        self._emit(on_progress, CaseStartedEvent(case_id=case.id, case_name=case.name))

        def elapsed_ms() -> int:
            return int((time.monotonic() - case_start) * 1000)

        try:
            await store.update_result(
                run_id, case.id, status=ResultStatus.RUNNING, started_at=utcnow()
            )

            simulation = await self._simulate_with_timeout(case, agent)
            tally.input_tokens += simulation.input_tokens
            tally.output_tokens += simulation.output_tokens

            if simulation.end_reason == EndReason.ERROR:
                await self._record_simulation_error(run_id, case, store, simulation, elapsed_ms())
                status, score = ResultStatus.ERRORED, None
            else:
                evaluation = await self._evaluator.evaluate(
                    simulation.transcript,
                    case.success_criteria,
                    case.scenario,
                    agent.system_prompt,
                )
                status, score = await self._record_outcome(
                    run_id, case, store, simulation, evaluation, elapsed_ms(), tally
                )
        except Exception as e:
            logger.error(f"Case {case.name!r} errored: {e}")
            status, score = ResultStatus.ERRORED, None
            await self._record_exception(run_id, case, store, e, elapsed_ms())

        tally.record(status, score)
        self._emit(
            on_progress,
            CaseCompletedEvent(
                case_id=case.id, case_name=case.name, status=status, score=score
            ),
        )
        self._emit(on_progress, ProgressTallyEvent(completed=tally.completed, total=tally.total))

    async def _record_outcome(
        self,
        run_id: str,
        case: TestCase,
        store: ResultStore,
        simulation: SimulationResult,
        evaluation: EvaluationResult | None,
        duration_ms: int,
        tally: RunTally,
    ) -> tuple[ResultStatus, int | None]:
        input_tokens = simulation.input_tokens
        output_tokens = simulation.output_tokens
        if evaluation is None:
            status = ResultStatus.FAILED
            score = None
        else:
            status = determine_pass_fail(evaluation.criteria_results, evaluation.overall_score)
            score = evaluation.overall_score
            input_tokens += evaluation.input_tokens
            output_tokens += evaluation.output_tokens
            tally.input_tokens += evaluation.input_tokens
            tally.output_tokens += evaluation.output_tokens

        await store.update_result(
            run_id,
            case.id,
            status=status,
            transcript=simulation.transcript,
            turn_count=simulation.turn_count,
            end_reason=simulation.end_reason,
            criteria_results=evaluation.criteria_results if evaluation else [],
            overall_score=score,
            evaluation_summary=evaluation.summary if evaluation else None,
            sentiment=evaluation.sentiment if evaluation else None,
            topics=evaluation.topics if evaluation else [],
            completed_at=utcnow(),
            duration_ms=duration_ms,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        logger.info(f"Case {case.name!r} {status.value} (score {score})")
        return status, score

    async def _record_simulation_error(
        self,
        run_id: str,
        case: TestCase,
        store: ResultStore,
        simulation: SimulationResult,
        duration_ms: int,
    ) -> None:
        await store.update_result(
            run_id,
            case.id,
            status=ResultStatus.ERRORED,
            transcript=simulation.transcript,
            turn_count=simulation.turn_count,
            end_reason=EndReason.ERROR,
            error_message=simulation.error or "Simulation failed",
            completed_at=utcnow(),
            duration_ms=duration_ms,
            input_tokens=simulation.input_tokens,
            output_tokens=simulation.output_tokens,
        )
        logger.warning(f"Case {case.name!r} simulation failed: {simulation.error}")

    async def _record_exception(
        self,
        run_id: str,
        case: TestCase,
        store: ResultStore,
        error: Exception,
        duration_ms: int,
    ) -> None:
        try:
            await store.update_result(
                run_id,
                case.id,
                status=ResultStatus.ERRORED,
                error_message=str(error) or type(error).__name__,
                completed_at=utcnow(),
                duration_ms=duration_ms,
            )
        except Exception as store_error:
            logger.error(f"Could not record error for case {case.name!r}: {store_error}")

    @staticmethod
    def _emit(on_progress: ProgressSink, event: ProgressEvent) -> None:
        try:
            on_progress(event)
        except Exception as e:
            logger.warning(f"Progress sink raised on {event.type} event: {e}")


async def prepare_run(
    store: ResultStore,
    cases: list[TestCase],
    prompt_tested: str,
    suite_id: str | None = None,
) -> tuple[TestRun, list[TestCase]]:
    """Create a pending run with one pending result per active case.

    Returns:
        The stored run and the active cases ordered by sort_order.

    Raises:
        ValidationError: If the suite has no active cases.
    """
    active = sorted((c for c in cases if c.is_active), key=lambda c: c.sort_order)
    if not active:
        raise ValidationError("No active test cases in this suite")

    run = TestRun(suite_id=suite_id, prompt_tested=prompt_tested, total_cases=len(active))
    await store.create_run(run, active)
    return run, active


async def run_suite(
    runner: TestRunner,
    run_id: str,
    cases: list[TestCase],
    agent: AgentConfig,
    store: ResultStore,
    on_progress: ProgressSink,
) -> TestRun:
    """Execute a pending run and return its final record.

    If the orchestrator itself fails, the run is marked failed before the
    error is re-raised.

    Raises:
        RunStateError: If the run is not pending.
    """
    run = await store.get_run(run_id)
    if run.status != RunStatus.PENDING:
        raise RunStateError(
            f'Cannot execute a run with status "{run.status.value}". '
            "Only pending runs can be executed."
        )

    try:
        await runner.execute_run(run, cases, agent, store, on_progress)
    except Exception:
        logger.exception(f"Test run {run_id} execution error")
        await store.update_run(run_id, status=RunStatus.FAILED, completed_at=utcnow())
        raise
    return await store.get_run(run_id)
