"""Progress events emitted by the test runner.

Events are discriminated by their ``type`` field so a sink can forward
them as JSON lines (``event.model_dump_json()``) without extra mapping.
"""

from collections.abc import Callable
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from calltest.models import ResultStatus


class StartedEvent(BaseModel):
    """The run has started executing."""

    type: Literal["started"] = "started"
    total: int


class CaseStartedEvent(BaseModel):
    """A case was admitted to the pool."""

    type: Literal["case_started"] = "case_started"
    case_id: str
    case_name: str


class CaseCompletedEvent(BaseModel):
    """A case reached a terminal status."""

    type: Literal["case_completed"] = "case_completed"
    case_id: str
    case_name: str
    status: ResultStatus
    score: int | None = None


class ProgressTallyEvent(BaseModel):
    """Running count of resolved cases."""

    type: Literal["progress"] = "progress"
    completed: int
    total: int


class CompleteEvent(BaseModel):
    """The run was finalized."""

    type: Literal["complete"] = "complete"
    run_id: str
    passed: int
    failed: int
    errored: int
    avg_score: float | None = None


ProgressEvent = Annotated[
    Union[
        StartedEvent,
        CaseStartedEvent,
        CaseCompletedEvent,
        ProgressTallyEvent,
        CompleteEvent,
    ],
    Field(discriminator="type"),
]

ProgressSink = Callable[[ProgressEvent], None]
