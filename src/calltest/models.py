"""Pydantic models for personas, test cases, transcripts and run records."""

import uuid
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a record identifier."""
    return uuid.uuid4().hex


class Temperament(str, Enum):
    """Emotional baseline of a simulated caller."""

    ANGRY = "angry"
    FRIENDLY = "friendly"
    CONFUSED = "confused"
    IMPATIENT = "impatient"
    SKEPTICAL = "skeptical"
    NEUTRAL = "neutral"


class CommunicationStyle(str, Enum):
    """How a simulated caller phrases things."""

    VERBOSE = "verbose"
    TERSE = "terse"
    RAMBLING = "rambling"
    DIRECT = "direct"
    POLITE = "polite"


class KnowledgeLevel(str, Enum):
    """How much the caller knows about the agent's domain."""

    EXPERT = "expert"
    MODERATE = "moderate"
    NOVICE = "novice"


class ObjectionTendency(str, Enum):
    """How readily the caller pushes back."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class CriterionType(str, Enum):
    """Weight class of a success criterion."""

    MUST_PASS = "must_pass"
    SHOULD_PASS = "should_pass"
    MUST_NOT_FAIL = "must_not_fail"


class TranscriptRole(str, Enum):
    """Speaker of a transcript message."""

    AGENT = "agent"
    CALLER = "caller"


class EndReason(str, Enum):
    """Why a simulated conversation stopped."""

    PERSONA_ENDED = "persona_ended"
    MAX_TURNS = "max_turns"
    NATURAL_END = "natural_end"
    ERROR = "error"


class Sentiment(str, Enum):
    """Overall caller sentiment reported by the evaluator."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class ResultStatus(str, Enum):
    """Lifecycle of a per-case result."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can happen from this status."""
        return self in (ResultStatus.PASSED, ResultStatus.FAILED, ResultStatus.ERRORED)


class RunStatus(str, Enum):
    """Lifecycle of a test run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PersonaTraits(BaseModel):
    """Behavioral traits of a simulated caller."""

    model_config = ConfigDict(frozen=True)

    temperament: Temperament = Field(Temperament.NEUTRAL, description="Emotional baseline")
    communication_style: CommunicationStyle = Field(
        CommunicationStyle.DIRECT, description="Phrasing style"
    )
    knowledge_level: KnowledgeLevel = Field(
        KnowledgeLevel.MODERATE, description="Domain knowledge"
    )
    objection_tendency: ObjectionTendency = Field(
        ObjectionTendency.LOW, description="Likelihood of raising objections"
    )
    custom_instructions: str | None = Field(None, description="Extra behavior for the persona")


class Persona(BaseModel):
    """Named caller archetype driving the simulated side of a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, description="Persona identifier")
    name: str = Field(..., min_length=1, description="Display name")
    description: str | None = Field(None, description="Free-text background")
    traits: PersonaTraits = Field(default_factory=PersonaTraits, description="Behavioral traits")
    is_preset: bool = Field(False, description="Whether this persona ships with calltest")


class SuccessCriterion(BaseModel):
    """A single pass/fail condition a transcript is judged against."""

    criterion: str = Field(..., min_length=1, description="What the agent should (not) do")
    type: CriterionType = Field(CriterionType.MUST_PASS, description="Weight class")


class TestCase(BaseModel):
    """A scenario to verify, reusable across many runs."""

    __test__: ClassVar[bool] = False

    id: str = Field(default_factory=new_id, description="Case identifier")
    name: str = Field(..., min_length=1, description="Short descriptive name")
    description: str | None = Field(None, description="Longer description")
    scenario: str = Field(..., min_length=1, description="Situation given to the caller")
    success_criteria: list[SuccessCriterion] = Field(
        default_factory=list, description="Ordered criteria"
    )
    max_turns: int = Field(20, ge=1, description="Maximum caller/agent exchanges")
    persona: Persona | None = Field(None, description="Assigned caller persona")
    tags: list[str] = Field(default_factory=list, description="Free-form categories")
    is_active: bool = Field(True, description="Inactive cases are skipped")
    sort_order: int = Field(0, description="Execution order within the suite")


class TranscriptMessage(BaseModel):
    """One utterance in a simulated conversation."""

    role: TranscriptRole
    content: str
    turn: int = Field(..., ge=0, description="Position in the transcript, from 0")


class CriterionResult(BaseModel):
    """Verdict for one success criterion."""

    criterion: str
    type: CriterionType
    passed: bool
    reasoning: str = ""


class TestResult(BaseModel):
    """Per-(run, case) result record."""

    __test__: ClassVar[bool] = False

    run_id: str
    case_id: str
    persona_id: str | None = None
    status: ResultStatus = ResultStatus.PENDING
    transcript: list[TranscriptMessage] = Field(default_factory=list)
    turn_count: int = 0
    end_reason: EndReason | None = None
    criteria_results: list[CriterionResult] = Field(default_factory=list)
    overall_score: int | None = Field(None, ge=0, le=100)
    evaluation_summary: str | None = None
    sentiment: Sentiment | None = None
    topics: list[str] = Field(default_factory=list)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class TestRun(BaseModel):
    """Suite-level aggregate for one execution of a test suite."""

    __test__: ClassVar[bool] = False

    id: str = Field(default_factory=new_id)
    suite_id: str | None = None
    prompt_tested: str = ""
    status: RunStatus = RunStatus.PENDING
    total_cases: int = 0
    passed_cases: int = 0
    failed_cases: int = 0
    errored_cases: int = 0
    avg_score: float | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    estimated_cost_cents: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class AgentConfig(BaseModel):
    """The agent-side data needed to simulate a call."""

    system_prompt: str = Field(..., min_length=1, description="Agent's configured prompt")
    first_message: str | None = Field(None, description="Static opening greeting")

    @classmethod
    def from_local_config(cls, config: Mapping[str, Any]) -> "AgentConfig":
        """Create from a locally stored agent config mapping.

        Voice providers name the prompt differently, so the first non-empty
        of ``prompt``, ``llm_prompt`` and ``system_prompt`` is used.

        Raises:
            ValueError: If no prompt key holds a value.
        """
        prompt = config.get("prompt") or config.get("llm_prompt") or config.get("system_prompt")
        if not prompt:
            raise ValueError(
                "Agent config has no prompt (expected 'prompt', 'llm_prompt' or 'system_prompt')"
            )
        first_message = config.get("first_message") or config.get("begin_message")
        return cls(system_prompt=str(prompt), first_message=first_message or None)
