# tests/unit/test_session.py

from __future__ import annotations
import asyncio
import sys
from pathlib import Path

# Ensure "src" is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from contextkey.core.errors import FailureKind  # type: ignore
from contextkey.core.models import Answer, Failure, ProviderConfig, StreamRecord, TransportKind  # type: ignore
from contextkey.core.session import InputMode, QuerySession, Turn, compose_input  # type: ignore


CFG = ProviderConfig(id="p", transport=TransportKind.GENERATIVE_STREAM,
                     endpoint="http://localhost:11434", model="m", context_limit=10)


class FakeDispatcher:
    def __init__(self, results):
        self.results = list(results)
        self.sent = []

    async def send(self, config, text, *, images=None, on_fragment=None):
        self.sent.append(text)
        result = self.results.pop(0)
        if on_fragment is not None and isinstance(result, Answer):
            on_fragment(StreamRecord(text=result.text, is_final=True))
        return result


def test_compose_context_and_question():
    assert compose_input("Doc text", "What?") == "Doc text\n\nQuestion: What?"


def test_compose_with_history():
    history = [Turn("hi", is_user=True), Turn("hello", is_user=False)]
    out = compose_input("ctx", "next?", history)
    assert out == "ctx\n\nConversation history:\nUser: hi\nAssistant: hello\n\nQuestion: next?"


def test_compose_modes():
    history = [Turn("hi", is_user=True)]
    assert compose_input("ctx", "q", history, InputMode.CONTEXT_ONLY) == "ctx\n\nQuestion: q"
    assert compose_input("ctx", "q", history, InputMode.QUESTION_ONLY) == "q"
    assert compose_input("", "q") == "Question: q"


def test_ask_records_history_on_success():
    d = FakeDispatcher([Answer("one"), Answer("two")])
    s = QuerySession(d, CFG, context="ctx")

    assert asyncio.run(s.ask("first")) == Answer("one")
    asyncio.run(s.ask("second"))

    assert d.sent[0] == "ctx\n\nQuestion: first"
    assert "User: first\nAssistant: one" in d.sent[1]
    assert [t.content for t in s.turns] == ["first", "one", "second", "two"]


def test_failed_ask_leaves_history_untouched():
    failure = Failure(kind=FailureKind.TRANSPORT_ERROR, message="down")
    d = FakeDispatcher([failure])
    s = QuerySession(d, CFG)
    assert asyncio.run(s.ask("q")) is failure
    assert s.turns == []


def test_fragments_forwarded():
    seen = []
    s = QuerySession(FakeDispatcher([Answer("x")]), CFG)
    asyncio.run(s.ask("q", on_fragment=lambda r: seen.append(r.text)))
    assert seen == ["x"]


def test_budget_uses_outgoing_input():
    s = QuerySession(FakeDispatcher([]), CFG, context="c" * 40)
    report = s.budget("q")
    assert report.limit == 10
    assert report.exceeds
