"""In-process result store."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from calltest.models import TestCase, TestResult, TestRun
from calltest.persistence.base import ResultStore
from calltest.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def apply_update(record: M, fields: dict[str, Any]) -> M:
    """Return a re-validated copy of a record with some fields replaced.

    Raises:
        ValidationError: If a field name is unknown or a value is invalid.
    """
    model_cls = type(record)
    unknown = set(fields) - set(model_cls.model_fields)
    if unknown:
        raise ValidationError(
            f"Unknown {model_cls.__name__} fields: {', '.join(sorted(unknown))}"
        )
    data = record.model_dump()
    data.update(fields)
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model_cls.__name__} update: {e}") from e


class InMemoryResultStore(ResultStore):
    """Keeps runs and results in dictionaries.

    Each write replaces a whole record, so concurrent cases writing their
    own rows never see each other's partial state.
    """

    def __init__(self) -> None:
        self._runs: dict[str, TestRun] = {}
        self._results: dict[str, dict[str, TestResult]] = {}

    async def create_run(self, run: TestRun, cases: list[TestCase]) -> TestRun:
        self._runs[run.id] = run
        self._results[run.id] = {
            case.id: TestResult(
                run_id=run.id,
                case_id=case.id,
                persona_id=case.persona.id if case.persona else None,
            )
            for case in cases
        }
        logger.debug(f"Created run {run.id} with {len(cases)} pending results")
        await self._persist(run.id)
        return run

    async def get_run(self, run_id: str) -> TestRun:
        try:
            return self._runs[run_id]
        except KeyError:
            raise NotFoundError("TestRun", run_id) from None

    async def update_run(self, run_id: str, **fields: Any) -> TestRun:
        run = apply_update(await self.get_run(run_id), fields)
        self._runs[run_id] = run
        await self._persist(run_id)
        return run

    async def get_result(self, run_id: str, case_id: str) -> TestResult:
        try:
            return self._results[run_id][case_id]
        except KeyError:
            raise NotFoundError("TestResult", f"{run_id}/{case_id}") from None

    async def update_result(self, run_id: str, case_id: str, **fields: Any) -> TestResult:
        result = apply_update(await self.get_result(run_id, case_id), fields)
        self._results[run_id][case_id] = result
        await self._persist(run_id)
        return result

    async def list_results(self, run_id: str) -> list[TestResult]:
        await self.get_run(run_id)
        return list(self._results.get(run_id, {}).values())

    async def _persist(self, run_id: str) -> None:
        """Hook for subclasses that mirror writes to durable storage."""
        return None
