"""
Participant registry.

Maps participant ids to personas and provider references. Built-in personas
come from personas.yaml; user-supplied participants are added with
``register``. The registry holds no conversation state.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

from config import get_custom_participant_defaults, get_personas_config
from core.settings import CUSTOM_PERSONA_TEMPLATE, DEFAULT_FALLBACK_PROMPT
from domain.enums import ProviderKind
from domain.participants import CustomParticipant, KnownParticipant, Participant, ProviderRef
from exceptions import ParticipantNotFoundError

logger = logging.getLogger("ParticipantRegistry")

DEFAULT_CUSTOM_MODEL = "openai/gpt-3.5-turbo"


class ParticipantRegistry:
    def __init__(
        self,
        participants: Optional[List[Participant]] = None,
        custom_defaults: Optional[Dict[str, Any]] = None,
    ):
        self._participants: Dict[str, Participant] = {}
        for participant in participants or []:
            self._participants[participant.id] = participant
        self._custom_defaults = custom_defaults or {}

    @classmethod
    def from_config(cls) -> "ParticipantRegistry":
        """Build the registry from personas.yaml."""
        personas = get_personas_config().get("personas") or {}
        participants: List[Participant] = []
        for name, entry in personas.items():
            participants.append(
                KnownParticipant(
                    id=name,
                    persona_prompt=(entry.get("persona") or DEFAULT_FALLBACK_PROMPT).strip(),
                    provider_ref=ProviderRef(
                        provider=ProviderKind(entry.get("provider", ProviderKind.OPENROUTER.value)),
                        model_id=entry.get("model_id", ""),
                    ),
                    description=entry.get("description", ""),
                )
            )
        logger.info(f"📚 Loaded {len(participants)} built-in participants")
        return cls(participants, custom_defaults=get_custom_participant_defaults())

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._participants

    def __len__(self) -> int:
        return len(self._participants)

    @property
    def ids(self) -> List[str]:
        return list(self._participants.keys())

    def known(self) -> List[KnownParticipant]:
        """Built-in participants in configuration order."""
        return [p for p in self._participants.values() if isinstance(p, KnownParticipant)]

    def resolve(self, participant_id: str) -> Participant:
        participant = self._participants.get(participant_id)
        if participant is None:
            raise ParticipantNotFoundError(participant_id)
        return participant

    def register(
        self,
        participant_id: str,
        persona_prompt: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        model_id: Optional[str] = None,
    ) -> Participant:
        """
        Register a participant, or update the persona of an existing one.

        Re-registering an id never creates a second entry. Unknown ids become
        custom participants called through an OpenAI-compatible endpoint.

        Args:
            participant_id: Display name and identifier
            persona_prompt: Persona override; custom participants get a default persona otherwise
            api_key: Credential for a custom participant
            endpoint: Chat-completions URL for a custom participant
            model_id: Model for a custom participant

        Returns:
            The registered participant
        """
        participant_id = participant_id.strip()
        if not participant_id:
            raise ValueError("Participant name must not be empty")

        existing = self._participants.get(participant_id)
        if existing is not None:
            updated = existing
            if persona_prompt:
                updated = replace(updated, persona_prompt=persona_prompt)
            if isinstance(existing, CustomParticipant) and (api_key or endpoint or model_id):
                updated = replace(
                    updated,
                    provider_ref=replace(
                        existing.provider_ref,
                        api_key=api_key or existing.provider_ref.api_key,
                        endpoint=endpoint or existing.provider_ref.endpoint,
                        model_id=model_id or existing.provider_ref.model_id,
                    ),
                )
            if updated is not existing:
                logger.info(f"✏️ Updated participant '{participant_id}'")
            self._participants[participant_id] = updated
            return updated

        template = (self._custom_defaults.get("persona") or CUSTOM_PERSONA_TEMPLATE).strip()
        participant = CustomParticipant(
            id=participant_id,
            persona_prompt=persona_prompt or template.format(name=participant_id),
            provider_ref=ProviderRef(
                provider=ProviderKind.CUSTOM,
                model_id=model_id or self._custom_defaults.get("model_id") or DEFAULT_CUSTOM_MODEL,
                api_key=api_key,
                endpoint=endpoint or self._custom_defaults.get("endpoint"),
            ),
        )
        self._participants[participant_id] = participant
        logger.info(f"➕ Registered custom participant '{participant_id}'")
        return participant
