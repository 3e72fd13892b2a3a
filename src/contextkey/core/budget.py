# src/contextkey/core/budget.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Union

from .models import ProviderConfig


def estimate_tokens(text: str) -> int:
    # Rough heuristic: 1 token ≈ 4 characters, rounded down
    return len(text) // 4


@dataclass(frozen=True)
class BudgetReport:
    """
    estimated_tokens: approximate token count for the combined input.
    limit: the provider's context_limit, None when unknown.
    exceeds: only ever True when a limit is known.
    """
    estimated_tokens: int
    limit: Optional[int] = None
    exceeds: bool = False
    warning: Optional[str] = None

    def describe(self) -> str:
        if self.limit is None:
            return f"~{self.estimated_tokens:,} tokens"
        return f"{self.estimated_tokens:,} / {self.limit:,} tokens"


def check_budget(text: str, config: Union[ProviderConfig, int, None]) -> BudgetReport:
    """
    Compare the estimate against the configured context limit.
    Accepts a ProviderConfig, a bare limit, or None.
    Pure: the same text and limit always give the same report.
    """
    estimated = estimate_tokens(text)
    limit = config.context_limit if isinstance(config, ProviderConfig) else config
    if limit is None:
        return BudgetReport(estimated_tokens=estimated)

    # a zero limit flags any non-empty text, even one that rounds down to 0 tokens
    exceeds = estimated > limit or (limit == 0 and bool(text))
    warning = (
        f"Context (~{estimated:,} tokens) exceeds model limit of {limit:,} tokens. "
        "Content may be truncated."
    ) if exceeds else None
    return BudgetReport(estimated_tokens=estimated, limit=limit, exceeds=exceeds, warning=warning)
