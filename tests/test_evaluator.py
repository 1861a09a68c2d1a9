"""Tests for transcript evaluation and pass/fail determination."""

from __future__ import annotations

import json
import sys

import pytest
from fakes import JudgeProvider

from calltest.evaluator import (
    EVALUATION_SYSTEM_PROMPT,
    UNEVALUATED_REASONING,
    TranscriptEvaluator,
    build_evaluation_prompt,
    clamp_score,
    determine_pass_fail,
    format_transcript,
    parse_evaluation_response,
    reconcile_criteria,
)
from calltest.models import (
    CriterionResult,
    CriterionType,
    ResultStatus,
    Sentiment,
    SuccessCriterion,
    TranscriptMessage,
    TranscriptRole,
)
from calltest.utils.errors import CompletionError

CRITERIA = [
    SuccessCriterion(criterion="Offers an appointment time", type=CriterionType.MUST_PASS),
    SuccessCriterion(criterion="Never quotes prices", type=CriterionType.MUST_NOT_FAIL),
]

TRANSCRIPT = [
    TranscriptMessage(role=TranscriptRole.AGENT, content="Bright Smiles, how can I help?", turn=0),
    TranscriptMessage(role=TranscriptRole.CALLER, content="I need a cleaning.", turn=1),
    TranscriptMessage(role=TranscriptRole.AGENT, content="Tuesday at 9am works.", turn=2),
]


def judge_reply(**overrides: object) -> str:
    body: dict[str, object] = {
        "criteria_results": [
            {
                "criterion": "Offers an appointment time",
                "type": "must_pass",
                "passed": True,
                "reasoning": "Offered Tuesday at 9am.",
            },
            {
                "criterion": "Never quotes prices",
                "type": "must_not_fail",
                "passed": True,
                "reasoning": "No prices mentioned.",
            },
        ],
        "overall_score": 82,
        "evaluation_summary": "Efficient booking.",
        "sentiment": "positive",
        "topics": ["booking"],
    }
    body.update(overrides)
    return json.dumps(body)


def verdict(criterion_type: CriterionType, passed: bool) -> CriterionResult:
    return CriterionResult(criterion="c", type=criterion_type, passed=passed)


class TestClampScore:
    """Tests for score normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (82, 82),
            (87.5, 88),
            (87.4, 87),
            (-5, 0),
            (140, 100),
            ("high", 50),
            (None, 50),
            (True, 50),
            (float("inf"), 50),
            (float("nan"), 50),
            (10**401, 100),
            (-(10**401), 0),
        ],
    )
    def test_clamp(self, raw: object, expected: int) -> None:
        assert clamp_score(raw) == expected


class TestPrompt:
    """Tests for judge prompt construction."""

    def test_format_transcript_labels_speakers(self) -> None:
        assert format_transcript(TRANSCRIPT[:2]) == (
            "Agent: Bright Smiles, how can I help?\nCaller: I need a cleaning."
        )

    def test_agent_prompt_is_truncated(self) -> None:
        prompt = build_evaluation_prompt(TRANSCRIPT, CRITERIA, "scenario", "x" * 5000)

        assert "x" * 3000 in prompt
        assert "x" * 3001 not in prompt
        assert "- [must_pass] Offers an appointment time" in prompt
        assert "- [must_not_fail] Never quotes prices" in prompt


class TestParseEvaluationResponse:
    """Tests for tolerant parsing of the judge's reply."""

    def test_plain_json(self) -> None:
        result = parse_evaluation_response(judge_reply(), CRITERIA)

        assert result is not None
        assert result.overall_score == 82
        assert result.sentiment == Sentiment.POSITIVE
        assert result.topics == ["booking"]
        assert len(result.criteria_results) == 2
        assert all(cr.passed for cr in result.criteria_results)

    def test_code_fenced_json(self) -> None:
        result = parse_evaluation_response(f"```json\n{judge_reply()}\n```", CRITERIA)

        assert result is not None
        assert result.overall_score == 82

    def test_invalid_json_returns_none(self) -> None:
        assert parse_evaluation_response("The agent did well.", CRITERIA) is None

    def test_non_object_returns_none(self) -> None:
        assert parse_evaluation_response("[1, 2, 3]", CRITERIA) is None

    @pytest.mark.skipif(
        not getattr(sys, "get_int_max_str_digits", lambda: 0)(), reason="no integer digit limit"
    )
    def test_integer_past_digit_limit_returns_none(self) -> None:
        digits = sys.get_int_max_str_digits()
        reply = '{"overall_score": ' + "9" * (digits + 1) + "}"

        assert parse_evaluation_response(reply, CRITERIA) is None

    def test_missing_criterion_is_appended_as_failed(self) -> None:
        reply = judge_reply(
            criteria_results=[
                {
                    "criterion": "Offers an appointment time",
                    "type": "must_pass",
                    "passed": True,
                    "reasoning": "ok",
                }
            ]
        )

        result = parse_evaluation_response(reply, CRITERIA)

        assert result is not None
        assert len(result.criteria_results) == 2
        added = result.criteria_results[-1]
        assert added.criterion == "Never quotes prices"
        assert added.type == CriterionType.MUST_NOT_FAIL
        assert added.passed is False
        assert added.reasoning == UNEVALUATED_REASONING

    def test_loose_fields_are_normalized(self) -> None:
        reply = judge_reply(
            overall_score="great",
            sentiment="ecstatic",
            topics=["a", "b", 3, "c", "d", "e", "f"],
            evaluation_summary="s" * 900,
        )

        result = parse_evaluation_response(reply, CRITERIA)

        assert result is not None
        assert result.overall_score == 50
        assert result.sentiment == Sentiment.NEUTRAL
        assert result.topics == ["a", "b", "c", "d", "e"]
        assert len(result.summary) == 500

    def test_malformed_entries_are_skipped(self) -> None:
        reply = judge_reply(
            criteria_results=[
                "not a dict",
                {"criterion": "Offers an appointment time", "passed": "yes"},
                {"criterion": "Never quotes prices", "type": "bogus", "passed": False},
            ]
        )

        result = parse_evaluation_response(reply, CRITERIA)

        assert result is not None
        by_text = {cr.criterion: cr for cr in result.criteria_results}
        assert by_text["Never quotes prices"].type == CriterionType.MUST_PASS
        assert by_text["Offers an appointment time"].reasoning == UNEVALUATED_REASONING


class TestReconcileCriteria:
    """Tests for prefix-based criterion matching."""

    def test_match_is_case_insensitive_prefix(self) -> None:
        returned = [
            CriterionResult(
                criterion="OFFERS AN APPOINTMENT TIME to the caller",
                type=CriterionType.MUST_PASS,
                passed=True,
            )
        ]

        reconciled = reconcile_criteria(returned, CRITERIA[:1])

        assert reconciled == returned

    def test_all_missing_are_appended_in_order(self) -> None:
        reconciled = reconcile_criteria([], CRITERIA)

        assert [cr.criterion for cr in reconciled] == [c.criterion for c in CRITERIA]
        assert not any(cr.passed for cr in reconciled)

    def test_near_identical_missing_criteria_each_get_a_verdict(self) -> None:
        expected = [
            SuccessCriterion(criterion="Confirms the appointment date with the caller"),
            SuccessCriterion(criterion="Confirms the appointment date and the time"),
        ]

        reconciled = reconcile_criteria([], expected)

        assert [cr.criterion for cr in reconciled] == [c.criterion for c in expected]


class TestDeterminePassFail:
    """Tests for the pass/fail rule."""

    def test_all_passed_above_threshold(self) -> None:
        results = [verdict(CriterionType.MUST_PASS, True), verdict(CriterionType.MUST_NOT_FAIL, True)]
        assert determine_pass_fail(results, 75) == ResultStatus.PASSED

    def test_failed_must_pass(self) -> None:
        assert determine_pass_fail([verdict(CriterionType.MUST_PASS, False)], 95) == ResultStatus.FAILED

    def test_violated_must_not_fail(self) -> None:
        results = [verdict(CriterionType.MUST_NOT_FAIL, False)]
        assert determine_pass_fail(results, 95) == ResultStatus.FAILED

    def test_failed_should_pass_does_not_fail(self) -> None:
        results = [verdict(CriterionType.SHOULD_PASS, False)]
        assert determine_pass_fail(results, 60) == ResultStatus.PASSED

    def test_score_threshold(self) -> None:
        assert determine_pass_fail([], 50) == ResultStatus.PASSED
        assert determine_pass_fail([], 49) == ResultStatus.FAILED


class TestTranscriptEvaluator:
    """Tests for TranscriptEvaluator.evaluate."""

    async def test_successful_evaluation_reports_tokens(self) -> None:
        provider = JudgeProvider(judge_reply(), tokens=(400, 120))

        result = await TranscriptEvaluator(provider, max_output_tokens=512).evaluate(
            TRANSCRIPT, CRITERIA, "Book a cleaning", "You are a receptionist."
        )

        assert result is not None
        assert result.overall_score == 82
        assert result.input_tokens == 400
        assert result.output_tokens == 120
        system_prompt, messages, max_tokens = provider.calls[0]
        assert system_prompt == EVALUATION_SYSTEM_PROMPT
        assert messages[0]["role"] == "user"
        assert max_tokens == 512

    async def test_no_criteria_skips_judge(self) -> None:
        provider = JudgeProvider(judge_reply())

        result = await TranscriptEvaluator(provider).evaluate(TRANSCRIPT, [], "s", "p")

        assert result is None
        assert provider.calls == []

    async def test_no_provider(self) -> None:
        result = await TranscriptEvaluator(None).evaluate(TRANSCRIPT, CRITERIA, "s", "p")
        assert result is None

    async def test_provider_error_returns_none(self) -> None:
        provider = JudgeProvider(CompletionError("overloaded"))

        result = await TranscriptEvaluator(provider).evaluate(TRANSCRIPT, CRITERIA, "s", "p")

        assert result is None

    async def test_empty_reply_returns_none(self) -> None:
        result = await TranscriptEvaluator(JudgeProvider("")).evaluate(
            TRANSCRIPT, CRITERIA, "s", "p"
        )
        assert result is None

    async def test_unparseable_reply_returns_none(self) -> None:
        result = await TranscriptEvaluator(JudgeProvider("Looks good to me!")).evaluate(
            TRANSCRIPT, CRITERIA, "s", "p"
        )
        assert result is None

    async def test_huge_integer_score_is_clamped(self) -> None:
        reply = '{"criteria_results": [], "overall_score": 1' + "0" * 400 + "}"

        result = await TranscriptEvaluator(JudgeProvider(reply)).evaluate(
            TRANSCRIPT, CRITERIA, "s", "p"
        )

        assert result is not None
        assert result.overall_score == 100
        assert not any(cr.passed for cr in result.criteria_results)
