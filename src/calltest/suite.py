"""Suite file loading.

A suite file is YAML or JSON::

    agent:
      system_prompt: "You are the front desk of ..."
      first_message: "Thanks for calling!"
    personas:
      - id: grumpy
        name: Grumpy Gus
        traits: {temperament: angry, communication_style: terse}
    cases:
      - name: Book an appointment
        scenario: "You want a cleaning next Tuesday."
        persona: grumpy
        success_criteria:
          - {criterion: "Confirms the date and time", type: must_pass}

``agent`` may also be a voice-provider config mapping with ``prompt`` or
``llm_prompt`` and ``begin_message``. A case's ``persona`` is either the id
of a persona declared in the file, a preset name or temperament, or an
inline persona mapping.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from calltest.models import AgentConfig, Persona, TestCase
from calltest.personas import get_preset_persona
from calltest.utils.errors import ValidationError

logger = logging.getLogger(__name__)


def _read_mapping(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text()
    except FileNotFoundError as e:
        raise ValidationError(f"Suite file not found: {path}") from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValidationError(f"Could not parse suite file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValidationError(f"Suite file {path} must contain a mapping")
    return data


def _resolve_persona(ref: Any, declared: dict[str, Persona]) -> Persona | None:
    if ref is None:
        return None
    if isinstance(ref, dict):
        return Persona.model_validate(ref)
    key = str(ref)
    if key in declared:
        return declared[key]
    persona = get_preset_persona(key)
    if persona is None:
        raise ValidationError(f"Unknown persona '{key}'")
    return persona


def parse_suite(
    data: dict[str, Any],
    default_max_turns: int | None = None,
) -> tuple[AgentConfig, list[TestCase]]:
    """Build the agent config and cases from a loaded suite mapping.

    Raises:
        ValidationError: If the agent, a persona or a case is invalid.
    """
    agent_data = data.get("agent")
    if not isinstance(agent_data, dict):
        raise ValidationError("Suite is missing an 'agent' mapping")
    try:
        agent = AgentConfig.from_local_config(agent_data)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    declared: dict[str, Persona] = {}
    try:
        for raw in data.get("personas") or []:
            persona = Persona.model_validate(raw)
            declared[persona.id] = persona

        cases = []
        for index, raw in enumerate(data.get("cases") or []):
            if not isinstance(raw, dict):
                raise ValidationError(f"Case #{index + 1} must be a mapping")
            fields = dict(raw)
            persona = _resolve_persona(fields.pop("persona", None), declared)
            fields.setdefault("sort_order", index)
            if default_max_turns is not None:
                fields.setdefault("max_turns", default_max_turns)
            cases.append(TestCase.model_validate({**fields, "persona": persona}))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid suite: {e}") from e

    logger.debug(f"Loaded suite with {len(cases)} cases and {len(declared)} personas")
    return agent, cases


def load_suite(
    path: str | Path,
    default_max_turns: int | None = None,
) -> tuple[AgentConfig, list[TestCase]]:
    """Load a suite from a YAML or JSON file."""
    return parse_suite(_read_mapping(Path(path)), default_max_turns)
