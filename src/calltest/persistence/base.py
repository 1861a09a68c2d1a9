"""Record store interface for test runs and per-case results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from calltest.models import TestCase, TestResult, TestRun


class ResultStore(ABC):
    """Record-oriented store keyed by run id and by (run id, case id).

    Updates are partial: only the named fields change. Unknown keys raise
    NotFoundError and unknown field names raise ValidationError.
    """

    @abstractmethod
    async def create_run(self, run: TestRun, cases: list[TestCase]) -> TestRun:
        """Store a run and one pending result per case."""

    @abstractmethod
    async def get_run(self, run_id: str) -> TestRun:
        """Get a run by id."""

    @abstractmethod
    async def update_run(self, run_id: str, **fields: Any) -> TestRun:
        """Update selected fields of a run and return the new record."""

    @abstractmethod
    async def get_result(self, run_id: str, case_id: str) -> TestResult:
        """Get the result of one case within a run."""

    @abstractmethod
    async def update_result(self, run_id: str, case_id: str, **fields: Any) -> TestResult:
        """Update selected fields of a case result and return the new record."""

    @abstractmethod
    async def list_results(self, run_id: str) -> list[TestResult]:
        """List all results of a run in creation order."""
