from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Tuple

from app.core.settings import settings
from app.services.history_store import history_repository
from app.services.llm_base import ChatStreamTransport
from app.services.prompts import get_template
from app.services.providers_gemini import GeminiProvider
from app.services.providers_ollama import OllamaProvider
from app.services.providers_openai import OpenAIProvider
from app.services.storage import storage
from app.services.streaming_session import ResultSink, StreamingGenerationSession


logger = logging.getLogger(__name__)

SurfaceKey = Tuple[str, str]


class GenerationService:
    """Keeps one generation surface per (browser session, tool) and the provider registry."""

    def __init__(
        self,
        sink: ResultSink = history_repository,
        providers: Optional[Dict[str, ChatStreamTransport]] = None,
    ) -> None:
        self._sink = sink
        if providers is None:
            providers = {
                "openai": OpenAIProvider(),
                "gemini": GeminiProvider(),
                "ollama": OllamaProvider(),
            }
        self._providers: Dict[str, ChatStreamTransport] = providers
        self._default_provider = settings.default_provider
        self._surfaces: Dict[SurfaceKey, StreamingGenerationSession] = {}
        self._fields: Dict[SurfaceKey, Dict[str, str]] = {}

    def register_provider(self, name: str, transport: ChatStreamTransport) -> None:
        self._providers[name] = transport

    def resolve_provider(self, name: Optional[str]) -> Tuple[str, ChatStreamTransport]:
        key = name or self._default_provider
        # Fallback to default if unknown provider key appears
        if key not in self._providers:
            logger.warning("unknown provider %r, using %r", key, self._default_provider)
            key = self._default_provider
        return key, self._providers[key]

    def get_surface(self, session_id: str, tool: str) -> Optional[StreamingGenerationSession]:
        return self._surfaces.get((session_id, tool))

    def surface(self, session_id: str, tool: str) -> StreamingGenerationSession:
        key = (session_id, tool)
        if key not in self._surfaces:
            _, transport = self.resolve_provider(None)
            self._surfaces[key] = StreamingGenerationSession(
                transport,
                self._sink,
                temperature=settings.generation_temperature,
                persist_empty=settings.persist_empty_results,
            )
        return self._surfaces[key]

    def owner_email_for(self, owner_id: str) -> Optional[str]:
        """Email of the account behind an owner id, when the id names a known user."""
        user = storage.resolve_user(owner_id)
        return user.email if user is not None else None

    def configure(
        self,
        surface: StreamingGenerationSession,
        *,
        owner_id: Optional[str] = None,
        owner_email: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> StreamingGenerationSession:
        # Provider, model and owner stick to the surface until a request names new ones
        if provider is not None:
            _, surface.transport = self.resolve_provider(provider)
        if model is not None:
            surface.model = model
        if owner_id is not None:
            surface.owner_id = owner_id
            surface.owner_email = owner_email or self.owner_email_for(owner_id)
        elif owner_email is not None:
            surface.owner_email = owner_email
        return surface

    def prepare(
        self,
        session_id: str,
        tool: str,
        fields: Mapping[str, str],
        *,
        owner_id: str,
        owner_email: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> StreamingGenerationSession:
        """Ready a surface for a fresh generation.

        The conversation is rebuilt only when the prompt fields differ from
        the ones the surface was last prepared with; otherwise it keeps the
        history of previous generations. A generation still running for the
        old fields is detached first so its answer never lands in the new
        conversation.
        """
        template = get_template(tool)
        system_instructions, user_prompt = template.render(fields)
        key = (session_id, tool)
        surface = self.surface(session_id, tool)
        normalized = {f: fields[f].strip() for f in template.fields}

        if self._fields.get(key) != normalized or not len(surface.context):
            surface.supersede()
            surface.context.rebuild(system_instructions, user_prompt)
            self._fields[key] = normalized
            logger.info("conversation for %s/%s rebuilt", session_id, tool)

        surface.input_description = template.describe_input(normalized)
        return self.configure(
            surface, owner_id=owner_id, owner_email=owner_email, provider=provider, model=model
        )

    def clear(self, session_id: str) -> int:
        """Drop every surface of a browser session. Returns how many were removed."""
        keys = [k for k in self._surfaces if k[0] == session_id]
        for key in keys:
            self._surfaces.pop(key).cancel()
            self._fields.pop(key, None)
        if keys:
            logger.info("cleared %d surface(s) for session %s", len(keys), session_id)
        return len(keys)


generation_service = GenerationService()
