"""Preset caller personas."""

from calltest.models import (
    CommunicationStyle,
    KnowledgeLevel,
    ObjectionTendency,
    Persona,
    PersonaTraits,
    Temperament,
)

DEFAULT_PERSONA = Persona(
    id="default",
    name="Default Caller",
    traits=PersonaTraits(
        temperament=Temperament.NEUTRAL,
        communication_style=CommunicationStyle.DIRECT,
        knowledge_level=KnowledgeLevel.MODERATE,
        objection_tendency=ObjectionTendency.LOW,
    ),
)

PRESET_PERSONAS: dict[Temperament, Persona] = {
    Temperament.FRIENDLY: Persona(
        id="preset-friendly",
        name="Friendly Regular",
        description="A warm, cooperative caller who is happy to answer questions.",
        traits=PersonaTraits(
            temperament=Temperament.FRIENDLY,
            communication_style=CommunicationStyle.POLITE,
            knowledge_level=KnowledgeLevel.MODERATE,
            objection_tendency=ObjectionTendency.NONE,
        ),
        is_preset=True,
    ),
    Temperament.ANGRY: Persona(
        id="preset-angry",
        name="Frustrated Customer",
        description="Upset about a previous bad experience and wants it fixed now.",
        traits=PersonaTraits(
            temperament=Temperament.ANGRY,
            communication_style=CommunicationStyle.TERSE,
            knowledge_level=KnowledgeLevel.MODERATE,
            objection_tendency=ObjectionTendency.HIGH,
        ),
        is_preset=True,
    ),
    Temperament.CONFUSED: Persona(
        id="preset-confused",
        name="Confused First-Timer",
        description="Unsure what they need and easily sidetracked.",
        traits=PersonaTraits(
            temperament=Temperament.CONFUSED,
            communication_style=CommunicationStyle.RAMBLING,
            knowledge_level=KnowledgeLevel.NOVICE,
            objection_tendency=ObjectionTendency.LOW,
        ),
        is_preset=True,
    ),
    Temperament.IMPATIENT: Persona(
        id="preset-impatient",
        name="Busy Professional",
        description="Short on time and wants the shortest path to an answer.",
        traits=PersonaTraits(
            temperament=Temperament.IMPATIENT,
            communication_style=CommunicationStyle.TERSE,
            knowledge_level=KnowledgeLevel.EXPERT,
            objection_tendency=ObjectionTendency.MEDIUM,
        ),
        is_preset=True,
    ),
    Temperament.SKEPTICAL: Persona(
        id="preset-skeptical",
        name="Skeptical Shopper",
        description="Comparing options and doubts every claim.",
        traits=PersonaTraits(
            temperament=Temperament.SKEPTICAL,
            communication_style=CommunicationStyle.DIRECT,
            knowledge_level=KnowledgeLevel.EXPERT,
            objection_tendency=ObjectionTendency.HIGH,
        ),
        is_preset=True,
    ),
    Temperament.NEUTRAL: Persona(
        id="preset-neutral",
        name="Neutral Caller",
        description="A matter-of-fact caller with a routine request.",
        traits=PersonaTraits(
            temperament=Temperament.NEUTRAL,
            communication_style=CommunicationStyle.VERBOSE,
            knowledge_level=KnowledgeLevel.MODERATE,
            objection_tendency=ObjectionTendency.LOW,
        ),
        is_preset=True,
    ),
}


def get_preset_persona(key: str) -> Persona | None:
    """Look up a preset persona by temperament, id or name (case-insensitive)."""
    needle = key.strip().lower()
    for temperament, persona in PRESET_PERSONAS.items():
        if needle in (temperament.value, persona.id, persona.name.lower()):
            return persona
    return None
