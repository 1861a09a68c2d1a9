"""JSON document store: one file per run.

Each run is written to ``<directory>/<run_id>.json`` holding the run
record and all of its case results. The file is rewritten after every
write through a temporary file, so readers never see a half-written
document.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from calltest.models import TestResult, TestRun
from calltest.persistence.memory import InMemoryResultStore
from calltest.utils.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class JsonFileResultStore(InMemoryResultStore):
    """In-memory store mirrored to JSON files in a directory."""

    def __init__(self, directory: Path | str) -> None:
        super().__init__()
        self.directory = Path(directory)

    def path_for(self, run_id: str) -> Path:
        """Path of the document holding a run."""
        return self.directory / f"{run_id}.json"

    async def _persist(self, run_id: str) -> None:
        """Rewrite the run document.

        The write is synchronous and runs on the event loop; documents are
        small and written once per case transition at CLI scale.
        """
        run = self._runs[run_id]
        document: dict[str, Any] = {
            "run": run.model_dump(mode="json"),
            "results": [
                r.model_dump(mode="json") for r in self._results.get(run_id, {}).values()
            ],
        }
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(run_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(document, indent=2))
        os.replace(tmp, path)
        logger.debug(f"Wrote run {run_id} to {path}")

    def load(self, run_id: str) -> TestRun:
        """Load a stored run document into memory.

        Raises:
            NotFoundError: If no document exists for the run.
            ValidationError: If the document is malformed.
        """
        path = self.path_for(run_id)
        if not path.exists():
            raise NotFoundError("TestRun", run_id)
        try:
            document = json.loads(path.read_text())
            run = TestRun.model_validate(document["run"])
            results = [TestResult.model_validate(r) for r in document.get("results", [])]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed run document {path}: {e}") from e

        self._runs[run.id] = run
        self._results[run.id] = {r.case_id: r for r in results}
        return run
