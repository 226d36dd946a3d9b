"""
Conversation context builder for participant turns.

Renders the transcript as plain ``sender: text`` lines and wraps it in the
prompt templates from conversation_context.yaml.
"""

from typing import Iterable, Optional

from config import get_conversation_context_config
from domain.contexts import GenerationRequest
from domain.messages import Message
from domain.participants import Participant


def build_transcript_text(messages: Iterable[Message]) -> str:
    """
    Render the transcript one message per line.

    System notices (e.g., "X has joined the conversation.") are UI-only and
    never shown to participants.
    """
    lines = []
    for msg in messages:
        if msg.is_system:
            continue
        lines.append(f"{msg.sender}: {msg.text}")
    return "\n".join(lines)


def build_turn_prompt(
    topic: str,
    transcript_text: str,
    agent_name: str,
    user_name: str,
) -> str:
    """
    Build the user prompt for one turn.

    Args:
        topic: Conversation topic
        transcript_text: Output of build_transcript_text
        agent_name: The speaker
        user_name: How the human is addressed

    Returns:
        Prompt text (persona is sent separately as the system prompt)
    """
    config = get_conversation_context_config().get("conversation_context", {})

    parts = [config.get("topic_line", "You are participating in a multi-AI conversation about: {topic}.").format(topic=topic)]

    user_line = config.get("user_line", "")
    if user_line and user_name:
        parts.append(user_line.format(user_name=user_name))

    parts.append(config.get("header", "The conversation so far:"))
    parts.append(transcript_text or config.get("empty_transcript", ""))

    footer = config.get("footer", "")
    if footer:
        parts.append(footer)

    instruction = config.get("response_instruction", "")
    if instruction:
        parts.append(instruction.format(agent_name=agent_name, user_name=user_name or "the user"))

    return "\n".join(part for part in parts if part)


def build_generation_request(
    participant: Participant,
    messages: Iterable[Message],
    topic: str,
    user_display_name: str,
    persona_override: Optional[str] = None,
) -> GenerationRequest:
    """Assemble everything the provider needs for ``participant``'s next reply."""
    transcript_text = build_transcript_text(messages)
    return GenerationRequest(
        participant=participant,
        persona_prompt=persona_override or participant.persona_prompt,
        transcript_text=transcript_text,
        topic=topic,
        user_display_name=user_display_name,
        prompt=build_turn_prompt(topic, transcript_text, participant.id, user_display_name),
    )
