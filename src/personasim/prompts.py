"""System-prompt construction and preset persona/scenario templates."""

from __future__ import annotations

import json
from typing import Sequence

from personasim.models import ContextData, PersonaTraits, ScenarioContext, TicketContext

__all__ = ["PromptBuilder", "PRESET_PERSONAS", "SCENARIO_TEMPLATES", "get_preset_persona"]


_TECH_LEVEL_LINES = {
    "beginner": (
        "You have limited technical knowledge and may not understand technical jargon. "
        "You need clear, simple explanations and step-by-step guidance. "
    ),
    "intermediate": (
        "You have moderate technical knowledge and can follow most instructions. "
        "You understand basic technical concepts but may need clarification on complex issues. "
    ),
    "advanced": (
        "You have strong technical knowledge and can understand complex explanations. "
        "You may have already tried basic troubleshooting steps. "
    ),
}

_STYLE_LINES = {
    "formal": "You communicate professionally and formally. ",
    "casual": "You communicate in a relaxed, conversational manner. ",
    "technical": "You prefer precise, technical communication and detailed explanations. ",
}

_EMOTION_LINES = {
    "calm": "You are patient and understanding throughout the conversation. ",
    "frustrated": "You are somewhat frustrated but remain cooperative. ",
    "angry": "You are upset about the issue but can be calmed with good service. ",
    "confused": "You are confused about the problem and need clear guidance. ",
}

_PATIENCE_LINES = {
    "low": (
        "- Show signs of impatience if resolution takes too long\n"
        "- Ask for escalation if not satisfied with progress\n"
    ),
    "medium": "- Be reasonably patient but express concern about delays\n",
    "high": "- Remain patient and understanding throughout the process\n",
}

_RESPONSE_GUIDELINES = """

Response guidelines:
- Keep responses conversational and natural
- Don't break character or mention being an AI
- Use appropriate language for your persona
- Vary your responses to avoid repetition
- Include realistic details and reactions
- Ask questions that a real customer would ask
- Express emotions appropriately to your situation
- Acknowledge good service and thank helpful responses"""

_GENERIC_OPENING = "You are a customer contacting IT support for help with a technical issue. "
_GENERIC_CLOSING = (
    "Respond naturally as a customer would, staying in character throughout the conversation. "
    "Ask relevant follow-up questions, provide requested information, and react appropriately "
    "to solutions offered."
)


class PromptBuilder:
    """Builds the system prompt that puts the model in character."""

    @classmethod
    def build_system_prompt(
        cls,
        persona: PersonaTraits,
        ticket: TicketContext | None = None,
        scenario: ScenarioContext | None = None,
    ) -> str:
        prompt = cls._persona_section(persona)
        if ticket is not None:
            prompt += cls._ticket_section(ticket)
        if scenario is not None:
            prompt += cls._scenario_section(scenario)
        prompt += cls._behavior_section(persona)
        prompt += _RESPONSE_GUIDELINES
        return prompt

    @classmethod
    def build_for_context(cls, context_data: ContextData) -> str:
        """System prompt for whatever context is known about a conversation.

        A persona gives the full in-character prompt; otherwise a generic
        customer prompt is built from the ticket and customer profile.
        """
        if context_data.persona is not None:
            return cls.build_system_prompt(
                context_data.persona, context_data.ticket, context_data.scenario
            )

        prompt = _GENERIC_OPENING
        if context_data.customer_profile:
            profile = json.dumps(context_data.customer_profile, sort_keys=True, default=str)
            prompt += f"Your personality traits: {profile}. "
        if context_data.ticket is not None:
            ticket = context_data.ticket
            prompt += f"Your issue: {ticket.description or 'Technical problem requiring support'}. "
            prompt += f"Ticket priority: {ticket.priority}. "
        return prompt + _GENERIC_CLOSING

    @staticmethod
    def build_follow_up_prompt(history: Sequence[str], persona: PersonaTraits) -> str:
        recent = "\n\n".join(history[-6:])
        return (
            f"\nPrevious conversation context:\n{recent}\n\n"
            f"Continue as {persona.name} with consistent personality and emotional state.\n"
            f"Remember your technical level ({persona.tech_level}) and communication style "
            f"({persona.communication_style}).\n"
            "Build on what has been discussed while staying in character."
        )

    @staticmethod
    def build_error_recovery_prompt(persona: PersonaTraits, error_context: str) -> str:
        return (
            f"\nAn error occurred: {error_context}\n\n"
            f"As {persona.name}, respond naturally to any service interruption or delay.\n"
            f"Express appropriate {persona.emotional_state} reaction.\n"
            "Ask relevant questions about the delay or alternative solutions.\n"
            "Maintain your character while acknowledging the service issue."
        )

    @staticmethod
    def _persona_section(persona: PersonaTraits) -> str:
        prompt = f"You are {persona.name}, a customer contacting IT support. "
        prompt += _TECH_LEVEL_LINES[persona.tech_level]
        prompt += _STYLE_LINES[persona.communication_style]
        prompt += _EMOTION_LINES[persona.emotional_state]
        if persona.background:
            prompt += f"Background: {persona.background}. "
        if persona.preferred_language:
            prompt += f"You prefer to communicate in {persona.preferred_language}. "
        if persona.accessibility_needs:
            prompt += f"Accessibility needs: {', '.join(persona.accessibility_needs)}. "
        return prompt

    @staticmethod
    def _ticket_section(ticket: TicketContext) -> str:
        prompt = f"\n\nYour current issue: {ticket.description} "
        prompt += f"This is a {ticket.priority} priority {ticket.category} issue. "
        if ticket.business_impact:
            prompt += f"Business impact: {ticket.business_impact}. "
        if ticket.previous_attempts:
            prompt += f"You have already tried: {', '.join(ticket.previous_attempts)}. "
        if ticket.affected_systems:
            prompt += f"Affected systems: {', '.join(ticket.affected_systems)}. "
        return prompt

    @staticmethod
    def _scenario_section(scenario: ScenarioContext) -> str:
        prompt = f"\n\nScenario context: This is a {scenario.complexity} {scenario.type} issue. "
        if scenario.learning_objectives:
            prompt += "During this conversation, naturally demonstrate or discuss: "
            prompt += ", ".join(scenario.learning_objectives) + ". "
        return prompt

    @staticmethod
    def _behavior_section(persona: PersonaTraits) -> str:
        prompt = "\n\nBehavior guidelines:\n"
        prompt += "- Stay in character throughout the entire conversation\n"
        prompt += "- Respond naturally as a real customer would\n"
        prompt += "- Provide information when asked, but don't volunteer everything at once\n"
        prompt += "- Ask follow-up questions when you need clarification\n"
        prompt += "- React appropriately to solutions offered\n"
        prompt += _PATIENCE_LINES[persona.patience]
        return prompt


PRESET_PERSONAS: dict[str, PersonaTraits] = {
    "frustrated-beginner": PersonaTraits(
        name="Sarah Mitchell",
        tech_level="beginner",
        communication_style="casual",
        patience="low",
        emotional_state="frustrated",
        background="Marketing coordinator with limited technical experience",
    ),
    "patient-expert": PersonaTraits(
        name="Dr. Robert Chen",
        tech_level="advanced",
        communication_style="formal",
        patience="high",
        emotional_state="calm",
        background="University professor with strong technical background",
    ),
    "confused-user": PersonaTraits(
        name="Maria Rodriguez",
        tech_level="beginner",
        communication_style="casual",
        patience="medium",
        emotional_state="confused",
        background="Administrative assistant new to the company systems",
    ),
    "impatient-poweruser": PersonaTraits(
        name="Alex Johnson",
        tech_level="advanced",
        communication_style="technical",
        patience="low",
        emotional_state="frustrated",
        background="Senior developer with high expectations for technical support",
    ),
    "polite-intermediate": PersonaTraits(
        name="Jennifer Williams",
        tech_level="intermediate",
        communication_style="formal",
        patience="high",
        emotional_state="calm",
        background="Office manager with moderate technical skills",
    ),
}

SCENARIO_TEMPLATES: dict[str, ScenarioContext] = {
    "password-reset": ScenarioContext(
        id="password-reset",
        type="account",
        complexity="simple",
        expected_resolution_time=300,
        learning_objectives=["Identity verification", "Security procedures", "Account management"],
    ),
    "network-connectivity": ScenarioContext(
        id="network-connectivity",
        type="network",
        complexity="moderate",
        expected_resolution_time=900,
        learning_objectives=["Network troubleshooting", "Hardware diagnosis", "User communication"],
    ),
    "software-crash": ScenarioContext(
        id="software-crash",
        type="software",
        complexity="complex",
        expected_resolution_time=1800,
        learning_objectives=["Error analysis", "Log interpretation", "Escalation procedures"],
    ),
    "security-incident": ScenarioContext(
        id="security-incident",
        type="security",
        complexity="complex",
        expected_resolution_time=2400,
        learning_objectives=["Security protocols", "Incident response", "Documentation requirements"],
    ),
}


def get_preset_persona(key: str) -> PersonaTraits:
    try:
        return PRESET_PERSONAS[key]
    except KeyError:
        known = ", ".join(sorted(PRESET_PERSONAS))
        raise KeyError(f"Unknown persona preset '{key}'. Known presets: {known}") from None
