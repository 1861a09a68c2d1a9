"""Transcript evaluator.

Asks a judge model to score a simulated conversation against the case's
success criteria and returns per-criterion verdicts, an overall score,
a summary, sentiment and topics.

Evaluation is best-effort: any failure (no judge configured, service error,
unparseable output) yields ``None`` so the caller can record the case
without a score instead of losing the transcript.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from calltest.models import (
    CriterionResult,
    CriterionType,
    ResultStatus,
    Sentiment,
    SuccessCriterion,
    TranscriptMessage,
    TranscriptRole,
)
from calltest.providers.base import CompletionProvider
from calltest.utils.json_output import parse_json_output

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVAL_TOKENS = 1024
AGENT_PROMPT_EXCERPT_CHARS = 3000
MAX_TEXT_CHARS = 500
MAX_TOPICS = 5
DEFAULT_SCORE = 50
PASS_THRESHOLD = 50
# Reconciliation matches on this many leading characters of each criterion.
# Near-identical criteria sharing a prefix can match the same verdict.
CRITERION_MATCH_CHARS = 30
UNEVALUATED_REASONING = "Could not be evaluated from the conversation."

EVALUATION_SYSTEM_PROMPT = """You are an expert QA evaluator for voice AI agents. Analyze this simulated conversation and evaluate each success criterion.

Respond with ONLY valid JSON in this exact format (no markdown, no extra text):
{
    "criteria_results": [
        {
            "criterion": "exact text from input",
            "type": "must_pass|should_pass|must_not_fail",
            "passed": true,
            "reasoning": "1-2 sentence explanation"
        }
    ],
    "overall_score": 75,
    "evaluation_summary": "2-3 sentence summary of agent performance",
    "sentiment": "positive|neutral|negative",
    "topics": ["topic1", "topic2"]
}

Scoring rules:
- Start at 70 (baseline for a functioning agent)
- Each must_pass failure: -15 points
- Each must_not_fail violation: -25 points
- Each should_pass success: +5 points
- Bonus for natural, empathetic conversation: up to +10
- Penalty for robotic, repetitive responses: up to -10
- Clamp final score to 0-100"""


@dataclass
class EvaluationResult:
    """Judge verdict for one transcript."""

    criteria_results: list[CriterionResult] = field(default_factory=list)
    overall_score: int = DEFAULT_SCORE
    summary: str = ""
    sentiment: Sentiment = Sentiment.NEUTRAL
    topics: list[str] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


def format_transcript(transcript: list[TranscriptMessage]) -> str:
    """Render a transcript as ``Speaker: text`` lines."""
    return "\n".join(
        f"{'Agent' if m.role == TranscriptRole.AGENT else 'Caller'}: {m.content}"
        for m in transcript
    )


def build_evaluation_prompt(
    transcript: list[TranscriptMessage],
    criteria: list[SuccessCriterion],
    scenario: str,
    agent_prompt: str,
) -> str:
    """Build the user message sent to the judge."""
    criteria_list = "\n".join(f"- [{c.type.value}] {c.criterion}" for c in criteria)
    return (
        f"Agent's system prompt (first {AGENT_PROMPT_EXCERPT_CHARS} chars):\n"
        f"{agent_prompt[:AGENT_PROMPT_EXCERPT_CHARS]}\n\n"
        f"Test scenario:\n{scenario}\n\n"
        f"Success criteria to evaluate:\n{criteria_list}\n\n"
        f"Simulated conversation:\n{format_transcript(transcript)}"
    )


def clamp_score(value: Any) -> int:
    """Round a model-reported score half-up and clamp it to [0, 100]."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_SCORE
    if isinstance(value, int):
        # Huge ints overflow float conversion
        return max(0, min(100, value))
    if not math.isfinite(value):
        return DEFAULT_SCORE
    return max(0, min(100, math.floor(value + 0.5)))


def _parse_criterion_type(value: Any) -> CriterionType:
    try:
        return CriterionType(value)
    except ValueError:
        return CriterionType.MUST_PASS


def reconcile_criteria(
    results: list[CriterionResult],
    expected: list[SuccessCriterion],
) -> list[CriterionResult]:
    """Append a failing verdict for every expected criterion the judge skipped.

    A criterion counts as addressed when the first 30 characters of its
    text, lowercased, occur in some returned criterion text.
    """
    reconciled = list(results)
    for criterion in expected:
        prefix = criterion.criterion.lower()[:CRITERION_MATCH_CHARS]
        if any(prefix in r.criterion.lower() for r in results):
            continue
        reconciled.append(
            CriterionResult(
                criterion=criterion.criterion,
                type=criterion.type,
                passed=False,
                reasoning=UNEVALUATED_REASONING,
            )
        )
    return reconciled


def parse_evaluation_response(
    text: str,
    expected: list[SuccessCriterion],
) -> EvaluationResult | None:
    """Parse the judge's JSON reply tolerantly.

    Returns:
        EvaluationResult without token counts, or None if the reply is not a
        JSON object.
    """
    try:
        raw = parse_json_output(text)
    except ValueError as e:
        logger.warning(f"Evaluation response is not valid JSON: {e}")
        return None
    if not isinstance(raw, dict):
        logger.warning("Evaluation response is not a JSON object")
        return None

    criteria_results: list[CriterionResult] = []
    raw_criteria = raw.get("criteria_results")
    if isinstance(raw_criteria, list):
        for cr in raw_criteria:
            if not isinstance(cr, dict):
                continue
            if not cr.get("criterion") or not isinstance(cr.get("passed"), bool):
                continue
            criteria_results.append(
                CriterionResult(
                    criterion=str(cr["criterion"])[:MAX_TEXT_CHARS],
                    type=_parse_criterion_type(cr.get("type")),
                    passed=cr["passed"],
                    reasoning=str(cr.get("reasoning") or "")[:MAX_TEXT_CHARS],
                )
            )

    summary = raw.get("evaluation_summary")
    try:
        sentiment = Sentiment(raw.get("sentiment"))
    except ValueError:
        sentiment = Sentiment.NEUTRAL
    topics = raw.get("topics")

    return EvaluationResult(
        criteria_results=reconcile_criteria(criteria_results, expected),
        overall_score=clamp_score(raw.get("overall_score")),
        summary=summary[:MAX_TEXT_CHARS] if isinstance(summary, str) else "",
        sentiment=sentiment,
        topics=[t for t in topics if isinstance(t, str)][:MAX_TOPICS]
        if isinstance(topics, list)
        else [],
    )


def determine_pass_fail(
    criteria_results: list[CriterionResult],
    overall_score: int,
) -> ResultStatus:
    """Decide a case's status from its verdicts.

    Fails on any unmet must_pass criterion, any violated must_not_fail
    criterion, or an overall score below 50.
    """
    for cr in criteria_results:
        if cr.type in (CriterionType.MUST_PASS, CriterionType.MUST_NOT_FAIL) and not cr.passed:
            return ResultStatus.FAILED
    if overall_score < PASS_THRESHOLD:
        return ResultStatus.FAILED
    return ResultStatus.PASSED


class TranscriptEvaluator:
    """Scores transcripts with a judge model."""

    def __init__(
        self,
        provider: CompletionProvider | None,
        max_output_tokens: int = DEFAULT_MAX_EVAL_TOKENS,
    ) -> None:
        self._provider = provider
        self._max_tokens = max_output_tokens

    async def evaluate(
        self,
        transcript: list[TranscriptMessage],
        criteria: list[SuccessCriterion],
        scenario: str,
        agent_prompt: str,
    ) -> EvaluationResult | None:
        """Evaluate a finished transcript against success criteria.

        Returns None when there is nothing to score or scoring failed;
        callers treat that as "no score", not as a failed run.
        """
        if not criteria:
            return None
        if self._provider is None:
            logger.warning("No evaluation provider configured; skipping evaluation")
            return None

        prompt = build_evaluation_prompt(transcript, criteria, scenario, agent_prompt)
        try:
            completion = await self._provider.complete(
                EVALUATION_SYSTEM_PROMPT,
                [{"role": "user", "content": prompt}],
                self._max_tokens,
            )
        except Exception as e:
            logger.error(f"Evaluation failed: {e}")
            return None

        if not completion.text:
            logger.warning("Evaluation returned no text")
            return None

        result = parse_evaluation_response(completion.text, criteria)
        if result is None:
            return None
        result.input_tokens = completion.input_tokens
        result.output_tokens = completion.output_tokens
        return result
