from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from prometheus_client import Counter

from app.services.llm_base import ChatStreamTransport


logger = logging.getLogger(__name__)

GENERATION_SESSIONS = Counter(
    "generation_sessions_total",
    "Finished content generation sessions",
    ["outcome"],
)

ROLES = ("system", "user", "assistant")


class ConversationContext:
    """Role-tagged message history sent as the prompt of every generation.

    The first message is always the system instructions. The history is only
    ever replaced wholesale (``rebuild``) or appended to.
    """

    def __init__(self, messages: Optional[Iterable[Mapping[str, str]]] = None) -> None:
        self._messages: List[Dict[str, str]] = []
        for message in messages or ():
            self.append(message["role"], message["content"])

    def rebuild(self, system_instructions: str, user_prompt: Optional[str] = None) -> None:
        self._messages = [{"role": "system", "content": system_instructions}]
        if user_prompt:
            self._messages.append({"role": "user", "content": user_prompt})

    def append(self, role: str, content: str) -> None:
        if role not in ROLES:
            raise ValueError(f"unknown role: {role!r}")
        if not self._messages and role != "system":
            raise ValueError("conversation must start with the system instructions")
        if self._messages and role == "system":
            raise ValueError("system instructions can only be the first message")
        self._messages.append({"role": role, "content": content})

    def append_assistant(self, text: str) -> None:
        self.append("assistant", text)

    @property
    def messages(self) -> Tuple[Dict[str, str], ...]:
        return tuple(dict(m) for m in self._messages)

    def as_payload(self) -> List[Dict[str, str]]:
        return [dict(m) for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)


class Utf8StreamDecoder:
    """UTF-8 decoder that carries incomplete multi-byte sequences between chunks."""

    def __init__(self) -> None:
        # "replace" only ever applies to invalid bytes; a sequence cut at a
        # chunk boundary is held back until the next feed()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, data: bytes) -> str:
        return self._decoder.decode(data, final=False)

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)

    def discard(self) -> None:
        self._decoder.reset()


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    FINISHED = "finished"


@dataclass
class GenerationSession:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    buffer: str = ""
    cancelled: bool = False
    error: Optional[BaseException] = None
    record_id: Optional[int] = None
    persisted: bool = False
    superseded: bool = False
    abort: asyncio.Event = field(default_factory=asyncio.Event, repr=False)
    decoder: Utf8StreamDecoder = field(default_factory=Utf8StreamDecoder, repr=False)
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    @property
    def finished(self) -> bool:
        return self.state is SessionState.FINISHED

    @property
    def outcome(self) -> str:
        if self.error is not None:
            return "error"
        if self.cancelled:
            return "cancelled"
        return "completed"

    def cancel(self) -> bool:
        """Signal abort. Returns False when already finished or already cancelled."""
        if self.finished or self.abort.is_set():
            return False
        self.cancelled = True
        self.abort.set()
        return True


class ResultSink(Protocol):
    def save(self, owner_id: str, input_description: str, result_text: str) -> int:
        """Persist a finished generation and return its record id."""
        ...


Observer = Callable[[GenerationSession, str], None]


class StreamingGenerationSession:
    """Drives generations for one UI surface (one tool in one browser session).

    ``start`` spawns a consumption task that reads the transport's byte
    stream, decodes it incrementally and republishes the growing buffer to
    observers. Each run ends FINISHED whether the stream ran out, was
    cancelled or failed, and is persisted exactly once.
    """

    def __init__(
        self,
        transport: ChatStreamTransport,
        sink: ResultSink,
        *,
        context: Optional[ConversationContext] = None,
        owner_id: str = "",
        owner_email: Optional[str] = None,
        input_description: str = "",
        model: Optional[str] = None,
        temperature: float = 0.7,
        persist_empty: bool = True,
    ) -> None:
        self.transport = transport
        self.sink = sink
        self.context = context or ConversationContext()
        self.owner_id = owner_id
        self.owner_email = owner_email
        self.input_description = input_description
        self.model = model
        self.temperature = temperature
        self.persist_empty = persist_empty
        self.mode = "input"  # input | result
        self._current: Optional[GenerationSession] = None
        self._observers: List[Observer] = []

    @property
    def current(self) -> Optional[GenerationSession]:
        return self._current

    @property
    def state(self) -> SessionState:
        session = self._current
        if session is None:
            return SessionState.IDLE
        if not session.finished:
            return SessionState.STREAMING
        if session.task is not None and not session.task.done():
            # Finished, persistence still in flight
            return SessionState.FINISHED
        return SessionState.IDLE

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._observers.remove(observer)

        return unsubscribe

    def start(self, context: Optional[ConversationContext] = None) -> GenerationSession:
        if context is not None:
            self.context = context
        if not len(self.context):
            raise ValueError("conversation context is empty")

        self.supersede()
        session = GenerationSession(state=SessionState.STREAMING)
        self._current = session
        self.mode = "result"
        payload = self.context.as_payload()
        session.task = asyncio.get_running_loop().create_task(self._consume(session, payload))
        logger.info("generation %s started with %d messages", session.id, len(payload))
        return session

    def supersede(self) -> Optional[GenerationSession]:
        """Detach the running generation, if any, from this surface.

        It is cancelled and still persisted once when its loop winds down,
        but its text never reaches the conversation or the observers.
        """
        previous = self._current
        if previous is None or previous.finished:
            return None
        previous.superseded = True
        if previous.cancel():
            logger.info("generation %s superseded", previous.id)
        return previous

    def cancel(self) -> None:
        session = self._current
        if session is not None and session.cancel():
            logger.info("generation %s cancelled by user", session.id)

    async def wait(self) -> Optional[GenerationSession]:
        session = self._current
        if session is not None and session.task is not None:
            await session.task
        return session

    async def _consume(self, session: GenerationSession, payload: List[Dict[str, str]]) -> None:
        stream = None
        try:
            stream = self.transport.stream_bytes(payload, model=self.model, temperature=self.temperature)
            while not session.abort.is_set():
                chunk = await self._next_chunk(stream, session.abort)
                if chunk is None or session.abort.is_set():
                    break
                self._on_chunk(session, chunk)
        except Exception as exc:  # noqa: BLE001 - a failed transport still finishes the session
            session.error = exc
            logger.warning("generation %s transport error: %s", session.id, exc)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                with contextlib.suppress(Exception):
                    await aclose()
        await self._on_complete(session)

    @staticmethod
    async def _next_chunk(stream: AsyncIterator[bytes], abort: asyncio.Event) -> Optional[bytes]:
        """Await the next chunk, or None at end of stream or when aborted first."""
        read = asyncio.ensure_future(anext(stream))
        aborted = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait({read, aborted}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.cancel()
            raise
        finally:
            aborted.cancel()

        if read in done:
            try:
                return read.result()
            except StopAsyncIteration:
                return None

        # Abort won the race: cancelling the read closes the transport
        read.cancel()
        await asyncio.gather(read, return_exceptions=True)
        return None

    def _on_chunk(self, session: GenerationSession, data: bytes) -> None:
        text = session.decoder.feed(data)
        if not text:
            return
        session.buffer += text
        self._publish(session)

    async def _on_complete(self, session: GenerationSession) -> None:
        if session.cancelled or session.error is not None:
            # Bytes of a character that never completed are dropped
            session.decoder.discard()
        else:
            tail = session.decoder.flush()
            if tail:
                session.buffer += tail
                self._publish(session)

        session.state = SessionState.FINISHED
        GENERATION_SESSIONS.labels(outcome=session.outcome).inc()
        logger.info(
            "generation %s finished (%s, %d chars)", session.id, session.outcome, len(session.buffer)
        )

        if session is self._current and not session.superseded:
            self.context.append_assistant(session.buffer)

        await self._persist(session)

    async def _persist(self, session: GenerationSession) -> None:
        if session.persisted:
            return
        session.persisted = True

        if not session.buffer and not self.persist_empty:
            logger.info("generation %s produced no text, history record skipped", session.id)
            return

        try:
            session.record_id = await asyncio.to_thread(
                self.sink.save, self.owner_id, self.input_description, session.buffer
            )
        except Exception as exc:  # noqa: BLE001 - a failed save never blocks the surface
            logger.error("generation %s could not be saved: %s", session.id, exc)
            return
        logger.info("generation %s saved as record %s", session.id, session.record_id)

    def _publish(self, session: GenerationSession) -> None:
        if session is not self._current or session.superseded:
            return
        for observer in list(self._observers):
            try:
                observer(session, session.buffer)
            except Exception:  # noqa: BLE001
                logger.exception("generation observer failed")
