from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence

from .budget import BudgetReport, check_budget
from .models import Answer, ProviderConfig, Result, StreamRecord


class InputMode(str, Enum):
    CONTEXT_AND_HISTORY = "context_and_history"
    CONTEXT_ONLY = "context_only"
    QUESTION_ONLY = "question_only"


@dataclass(frozen=True)
class Turn:
    content: str
    is_user: bool


def format_history(history: Iterable[Turn]) -> str:
    return "\n".join(f"User: {t.content}" if t.is_user else f"Assistant: {t.content}" for t in history)


def compose_input(
    context: str,
    question: str,
    history: Sequence[Turn] = (),
    mode: InputMode = InputMode.CONTEXT_AND_HISTORY,
) -> str:
    """
    Assemble the single string sent to the provider:
      <context>

      Conversation history:
      User: ...
      Assistant: ...

      Question: <question>
    Empty parts are left out; QUESTION_ONLY sends the question alone.
    """
    if mode is InputMode.QUESTION_ONLY:
        return question

    parts: List[str] = []
    if context:
        parts.append(context)
    if mode is InputMode.CONTEXT_AND_HISTORY and history:
        parts.append("Conversation history:\n" + format_history(history))
    if question:
        parts.append(f"Question: {question}")
    return "\n\n".join(parts)


class QuerySession:
    """
    In-memory conversation against one provider snapshot.
    Nothing is persisted; callers that keep history own that.
    """

    def __init__(self, dispatcher, config: ProviderConfig, context: str = "",
                 mode: InputMode = InputMode.CONTEXT_AND_HISTORY):
        self.dispatcher = dispatcher
        self.config = config
        self.context = context
        self.mode = mode
        self.turns: List[Turn] = []

    def outgoing_input(self, question: str) -> str:
        return compose_input(self.context, question, self.turns, self.mode)

    def budget(self, question: str) -> BudgetReport:
        return check_budget(self.outgoing_input(question), self.config)

    async def ask(self, question: str, *, images: Optional[Sequence[str]] = None,
                  on_fragment: Optional[Callable[[StreamRecord], None]] = None) -> Result:
        text = self.outgoing_input(question)
        result = await self.dispatcher.send(self.config, text, images=images, on_fragment=on_fragment)
        # only completed exchanges join the history
        if isinstance(result, Answer):
            self.turns.append(Turn(question, is_user=True))
            self.turns.append(Turn(result.text, is_user=False))
        return result
