"""Turn-by-turn conversation simulator.

Runs a simulated phone call between two independent completion contexts:

1. Persona context: plays the test caller and sees the persona traits and
   the scenario.
2. Agent context: uses the agent's real system prompt verbatim.

Neither context sees the other's system prompt. Both message histories are
rebuilt from the single canonical transcript before every call, so the
simulation state is just the transcript itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from calltest.models import (
    AgentConfig,
    EndReason,
    Persona,
    TranscriptMessage,
    TranscriptRole,
)
from calltest.providers.base import ChatMessage, CompletionProvider

logger = logging.getLogger(__name__)

END_CALL_SENTINEL = "[END_CALL]"
OPENING_CUE = "[A caller has just connected. Deliver your opening greeting.]"
FALLBACK_GREETING = "Hello, how can I help you today?"
DEFAULT_MAX_TOKENS_PER_TURN = 256


@dataclass
class SimulationResult:
    """Outcome of one simulated conversation."""

    transcript: list[TranscriptMessage] = field(default_factory=list)
    end_reason: EndReason = EndReason.MAX_TURNS
    input_tokens: int = 0
    output_tokens: int = 0
    error: str | None = None

    @property
    def turn_count(self) -> int:
        """Number of messages in the transcript, opening included."""
        return len(self.transcript)


def build_persona_prompt(persona: Persona, scenario: str) -> str:
    """Build the system prompt for the caller side of the conversation."""
    traits = persona.traits
    lines = [
        "You are role-playing as a phone caller in a simulated conversation. "
        "Stay fully in character.",
        "",
        f"Your persona: {persona.name}",
        persona.description or "",
        "",
        "Your traits:",
        f"- Temperament: {traits.temperament.value}",
        f"- Communication style: {traits.communication_style.value}",
        f"- Knowledge level: {traits.knowledge_level.value}",
        f"- Objection tendency: {traits.objection_tendency.value}",
    ]
    if traits.custom_instructions:
        lines.append(f"- Special behavior: {traits.custom_instructions}")

    lines += [
        "",
        "Your scenario:",
        scenario,
        "",
        "RULES:",
        "- Respond naturally as this persona would on a phone call",
        "- Keep responses concise (1-3 sentences, like real speech)",
        "- Stay in character throughout and do not break the fourth wall",
        "- If your goal in the scenario is achieved OR the conversation naturally "
        f"concludes, say goodbye and append {END_CALL_SENTINEL}",
        "- If the agent is unhelpful after 3-4 attempts, express frustration and "
        f"end with {END_CALL_SENTINEL}",
        "- Do NOT include stage directions, narration, or parenthetical notes",
        f"- Output ONLY your spoken words (plus {END_CALL_SENTINEL} when ending)",
    ]
    return "\n".join(lines)


def _replay(transcript: list[TranscriptMessage], own_role: TranscriptRole) -> list[ChatMessage]:
    messages: list[ChatMessage] = []
    for msg in transcript:
        role = "assistant" if msg.role == own_role else "user"
        messages.append({"role": role, "content": msg.content})
    return messages


def build_agent_messages(transcript: list[TranscriptMessage]) -> list[ChatMessage]:
    """Replay the transcript from the agent's point of view."""
    return _replay(transcript, TranscriptRole.AGENT)


def build_persona_messages(transcript: list[TranscriptMessage]) -> list[ChatMessage]:
    """Replay the transcript from the caller's point of view."""
    return _replay(transcript, TranscriptRole.CALLER)


def strip_end_call(text: str) -> tuple[str, bool]:
    """Remove the termination sentinel.

    Returns:
        The spoken text without the sentinel, and whether it was present.
    """
    if END_CALL_SENTINEL not in text:
        return text.strip(), False
    return text.replace(END_CALL_SENTINEL, "").strip(), True


class ConversationSimulator:
    """Drives one simulated call to completion."""

    def __init__(
        self,
        provider: CompletionProvider,
        max_tokens_per_turn: int = DEFAULT_MAX_TOKENS_PER_TURN,
    ) -> None:
        self._provider = provider
        self._max_tokens = max_tokens_per_turn

    async def _speak(
        self,
        result: SimulationResult,
        system_prompt: str,
        messages: list[ChatMessage],
    ) -> str:
        completion = await self._provider.complete(system_prompt, messages, self._max_tokens)
        result.input_tokens += completion.input_tokens
        result.output_tokens += completion.output_tokens
        return completion.text

    async def simulate(
        self,
        agent: AgentConfig,
        persona: Persona,
        scenario: str,
        max_turns: int,
        on_turn: Callable[[TranscriptMessage], None] | None = None,
    ) -> SimulationResult:
        """Run the conversation until it ends or max_turns exchanges are used.

        Any completion failure stops the loop and is reported through
        ``end_reason=error``; the transcript gathered so far is kept.

        Args:
            agent: The agent-under-test's prompt and optional greeting.
            persona: Caller persona to role-play.
            scenario: Situation the caller is in.
            max_turns: Maximum number of caller/agent exchanges.
            on_turn: Called with every message appended to the transcript.

        Returns:
            SimulationResult with at most ``2 * max_turns + 1`` messages.
        """
        result = SimulationResult()
        persona_prompt = build_persona_prompt(persona, scenario)

        def append(role: TranscriptRole, content: str) -> None:
            msg = TranscriptMessage(role=role, content=content, turn=len(result.transcript))
            result.transcript.append(msg)
            if on_turn is not None:
                on_turn(msg)

        # Turn 0: agent opening
        if agent.first_message:
            opening = agent.first_message
        else:
            try:
                opening = await self._speak(
                    result,
                    agent.system_prompt,
                    [{"role": "user", "content": OPENING_CUE}],
                )
            except Exception as e:
                logger.error(f"Agent opening failed: {e}")
                result.end_reason = EndReason.ERROR
                result.error = str(e) or type(e).__name__
                return result
            opening = opening.strip() or FALLBACK_GREETING
        append(TranscriptRole.AGENT, opening)

        exchanges = 0
        while exchanges < max_turns:
            turn = len(result.transcript)

            # Persona turn
            try:
                raw = await self._speak(
                    result, persona_prompt, build_persona_messages(result.transcript)
                )
            except Exception as e:
                logger.error(f"Persona turn {turn} failed: {e}")
                result.end_reason = EndReason.ERROR
                result.error = str(e) or type(e).__name__
                break

            caller_text, ended = strip_end_call(raw)
            if caller_text:
                append(TranscriptRole.CALLER, caller_text)
            if ended:
                result.end_reason = EndReason.PERSONA_ENDED
                break
            if not caller_text:
                result.end_reason = EndReason.NATURAL_END
                break

            # Agent turn
            turn = len(result.transcript)
            try:
                raw = await self._speak(
                    result, agent.system_prompt, build_agent_messages(result.transcript)
                )
            except Exception as e:
                logger.error(f"Agent turn {turn} failed: {e}")
                result.end_reason = EndReason.ERROR
                result.error = str(e) or type(e).__name__
                break

            agent_text = raw.strip()
            if not agent_text:
                result.end_reason = EndReason.NATURAL_END
                break
            append(TranscriptRole.AGENT, agent_text)

            exchanges += 1
            logger.debug(f"Exchange {exchanges}/{max_turns} complete")
        else:
            result.end_reason = EndReason.MAX_TURNS

        return result
