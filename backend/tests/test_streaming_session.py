"""Tests for the streaming generation state machine, decoder and conversation context."""

import logging

import pytest

from app.core.errors import PersistenceError, TransportError
from app.services.streaming_session import (
    ConversationContext,
    SessionState,
    StreamingGenerationSession,
    Utf8StreamDecoder,
)
from conftest import GatedTransport, RecordingSink, ScriptedTransport, wait_until


def _context():
    context = ConversationContext()
    context.rebuild("You are a marketing assistant.", "Write a plan for Acme.")
    return context


def _surface(transport, sink, **kwargs):
    return StreamingGenerationSession(
        transport,
        sink,
        context=_context(),
        owner_id="user-1",
        input_description="Acme",
        **kwargs,
    )


# Decoder

def test_decoder_holds_split_multibyte_character():
    decoder = Utf8StreamDecoder()
    euro = "€".encode("utf-8")
    assert decoder.feed(euro[:1]) == ""
    assert decoder.feed(euro[1:]) == "€"


def test_decoder_matches_whole_decode_at_every_split_point():
    text = "Privacy für alle – 日本語 🎉"
    raw = text.encode("utf-8")
    for cut in range(len(raw) + 1):
        decoder = Utf8StreamDecoder()
        decoded = decoder.feed(raw[:cut]) + decoder.feed(raw[cut:]) + decoder.flush()
        assert decoded == text


def test_decoder_invalid_bytes_are_not_fatal():
    decoder = Utf8StreamDecoder()
    assert decoder.feed(b"ok\xff") == "ok�"


# Conversation context

def test_context_rebuild_replaces_history():
    context = _context()
    context.append_assistant("first answer")
    context.rebuild("New instructions", "New prompt")
    assert context.as_payload() == [
        {"role": "system", "content": "New instructions"},
        {"role": "user", "content": "New prompt"},
    ]


def test_context_requires_system_first():
    context = ConversationContext()
    with pytest.raises(ValueError):
        context.append("user", "hello")
    context.append("system", "rules")
    with pytest.raises(ValueError):
        context.append("system", "more rules")
    with pytest.raises(ValueError):
        context.append("tool", "nope")


def test_context_payload_is_a_copy():
    context = _context()
    payload = context.as_payload()
    payload[0]["content"] = "changed"
    assert context.messages[0]["content"] == "You are a marketing assistant."


# Session lifecycle

@pytest.mark.asyncio
async def test_start_requires_context(sink):
    surface = StreamingGenerationSession(ScriptedTransport([]), sink)
    with pytest.raises(ValueError):
        surface.start()


@pytest.mark.asyncio
async def test_natural_completion_persists_full_buffer_once(sink):
    chunks = [b"<h1>Plan</h1>", b"<p>Step one", b"</p>"]
    transport = ScriptedTransport(chunks)
    surface = _surface(transport, sink)
    updates = []
    surface.subscribe(lambda session, text: updates.append(text))

    session = surface.start()
    assert surface.mode == "result"
    assert surface.state is SessionState.STREAMING
    await surface.wait()

    expected = b"".join(chunks).decode("utf-8")
    assert session.buffer == expected
    assert session.outcome == "completed"
    assert updates == ["<h1>Plan</h1>", "<h1>Plan</h1><p>Step one", expected]
    assert sink.saved == [("user-1", "Acme", expected)]
    assert session.record_id == 1001
    assert surface.context.messages[-1] == {"role": "assistant", "content": expected}
    assert surface.state is SessionState.IDLE
    assert transport.calls[0] == _context().as_payload()


@pytest.mark.asyncio
async def test_cancel_before_first_chunk_persists_empty_result(sink):
    surface = _surface(GatedTransport(), sink)

    session = surface.start()
    surface.cancel()
    await surface.wait()

    assert session.finished
    assert session.cancelled
    assert session.buffer == ""
    assert sink.saved == [("user-1", "Acme", "")]


@pytest.mark.asyncio
async def test_cancel_before_first_chunk_skips_save_when_empty_results_disabled(sink):
    surface = _surface(GatedTransport(), sink, persist_empty=False)

    session = surface.start()
    surface.cancel()
    await surface.wait()

    assert session.finished
    assert session.record_id is None
    assert sink.saved == []


@pytest.mark.asyncio
async def test_cancel_mid_stream_keeps_only_chunks_read_before_abort(sink):
    transport = GatedTransport()
    surface = _surface(transport, sink)

    session = surface.start()
    transport.push(b"first ", b"second")
    await wait_until(lambda: session.buffer == "first second")

    surface.cancel()
    transport.push(b" third", None)
    await surface.wait()

    assert session.finished
    assert session.outcome == "cancelled"
    assert session.buffer == "first second"
    assert transport.closed == 1
    assert [saved[2] for saved in sink.saved] == ["first second"]


@pytest.mark.asyncio
async def test_cancel_drops_incomplete_character_at_abort(sink):
    transport = GatedTransport()
    surface = _surface(transport, sink)

    session = surface.start()
    transport.push("ok €".encode("utf-8")[:-1])
    await wait_until(lambda: session.buffer == "ok ")
    surface.cancel()
    await surface.wait()

    assert session.buffer == "ok "
    assert sink.saved[0][2] == "ok "


@pytest.mark.asyncio
async def test_repeated_cancel_after_finish_is_idempotent(sink):
    surface = _surface(ScriptedTransport([b"done"]), sink)

    session = surface.start()
    await surface.wait()
    surface.cancel()
    surface.cancel()

    assert not session.cancelled
    assert session.outcome == "completed"
    assert len(sink.saved) == 1


@pytest.mark.asyncio
async def test_continue_sends_previous_answer_as_context(sink):
    transport = ScriptedTransport([b"Plan A"])
    surface = _surface(transport, sink)

    surface.start()
    await surface.wait()
    surface.start()
    await surface.wait()

    first, second = transport.calls
    assert len(second) == len(first) + 1
    assert second[-1] == {"role": "assistant", "content": "Plan A"}
    assert len(surface.context) == 4
    assert len(sink.saved) == 2


@pytest.mark.asyncio
async def test_transport_error_finishes_session_with_partial_buffer(sink, caplog):
    caplog.set_level(logging.INFO)
    transport = ScriptedTransport([b"partial "], error=TransportError("connection reset"))
    surface = _surface(transport, sink)

    session = surface.start()
    await surface.wait()

    assert session.finished
    assert isinstance(session.error, TransportError)
    assert session.outcome == "error"
    assert session.buffer == "partial "
    assert [saved[2] for saved in sink.saved] == ["partial "]
    assert "transport error" in caplog.text


@pytest.mark.asyncio
async def test_persistence_failure_is_logged_not_raised(caplog):
    caplog.set_level(logging.INFO)
    surface = _surface(ScriptedTransport([b"text"]), RecordingSink(error=PersistenceError("db down")))

    session = surface.start()
    await surface.wait()

    assert session.finished
    assert session.record_id is None
    assert surface.state is SessionState.IDLE
    assert "could not be saved" in caplog.text


@pytest.mark.asyncio
async def test_multibyte_characters_split_across_chunks(sink):
    text = "Datenschutz für alle: 日本語 🎉"
    raw = text.encode("utf-8")
    chunks = [raw[i:i + 3] for i in range(0, len(raw), 3)]
    surface = _surface(ScriptedTransport(chunks), sink)
    updates = []
    surface.subscribe(lambda session, value: updates.append(value))

    session = surface.start()
    await surface.wait()

    assert session.buffer == text
    assert all("�" not in value for value in updates)
    assert sink.saved[0][2] == text


@pytest.mark.asyncio
async def test_new_start_supersedes_running_session(sink):
    transport = GatedTransport()
    surface = _surface(transport, sink)
    updates = []
    surface.subscribe(lambda session, text: updates.append((session.id, text)))

    first = surface.start()
    transport.push(b"old")
    await wait_until(lambda: first.buffer == "old")

    second = surface.start()
    assert first.superseded
    assert first.cancelled
    await first.task

    transport.push(b"new", None)
    await surface.wait()

    assert surface.current is second
    assert second.buffer == "new"
    assert [saved[2] for saved in sink.saved] == ["old", "new"]
    assert surface.context.messages[-1] == {"role": "assistant", "content": "new"}
    assert len(surface.context) == 3
    assert [text for session_id, text in updates if session_id == second.id] == ["new"]


@pytest.mark.asyncio
async def test_unsubscribed_observer_stops_receiving(sink):
    surface = _surface(ScriptedTransport([b"a", b"b"]), sink)
    updates = []
    unsubscribe = surface.subscribe(lambda session, text: updates.append(text))
    unsubscribe()

    surface.start()
    await surface.wait()

    assert updates == []


class _FailingOnCallTransport:
    """Raises from the call itself instead of from the first read."""

    def stream_bytes(self, messages, *, model=None, temperature=0.7):
        raise TransportError("no route to host")


@pytest.mark.asyncio
async def test_transport_failing_on_call_still_finishes_and_saves(sink):
    surface = _surface(_FailingOnCallTransport(), sink)

    session = surface.start()
    await surface.wait()

    assert session.finished
    assert isinstance(session.error, TransportError)
    assert surface.state is SessionState.IDLE
    assert [saved[2] for saved in sink.saved] == [""]


@pytest.mark.asyncio
async def test_supersede_detaches_running_generation(sink):
    transport = GatedTransport()
    surface = _surface(transport, sink)
    updates = []
    surface.subscribe(lambda session, text: updates.append(text))

    session = surface.start()
    transport.push(b"draft")
    await wait_until(lambda: session.buffer == "draft")

    assert surface.supersede() is session
    await surface.wait()

    assert session.superseded and session.cancelled
    assert [m["role"] for m in surface.context.messages] == ["system", "user"]
    assert updates == ["draft"]
    assert [saved[2] for saved in sink.saved] == ["draft"]
    assert surface.supersede() is None
