"""Pytest fixtures shared across calltest tests."""

import pytest

from calltest.config import get_config
from calltest.models import AgentConfig, CriterionType, SuccessCriterion, TestCase
from calltest.simulator import END_CALL_SENTINEL


@pytest.fixture(autouse=True)
def fresh_config():
    """Drop the cached environment config between tests."""
    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def agent() -> AgentConfig:
    """Agent with a static greeting."""
    return AgentConfig(
        system_prompt="You are a helpful receptionist.",
        first_message="Thanks for calling Bright Smiles Dental, how can I help?",
    )


@pytest.fixture
def booking_case() -> TestCase:
    """A single-criterion booking case."""
    return TestCase(
        id="case-booking",
        name="Book a cleaning",
        scenario="You want a teeth cleaning next Tuesday morning.",
        success_criteria=[
            SuccessCriterion(criterion="Offers an appointment time", type=CriterionType.MUST_PASS),
        ],
        max_turns=3,
    )


@pytest.fixture
def hangup_caller() -> list[str]:
    """Caller that says one line and then hangs up."""
    return ["Hi, I need a cleaning.", f"Great, thanks. Bye! {END_CALL_SENTINEL}"]
