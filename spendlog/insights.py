"""Boundary to the categorization / question-answering service.

The service itself lives elsewhere; this module only decides what data
it gets, bounds each call with a timeout and lets callers drop replies
that arrive after they have moved on.
"""

from __future__ import annotations

import asyncio
import itertools
import json
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Iterable, NamedTuple, Optional

from spendlog import analytics
from spendlog.config import INSIGHT_TIMEOUT
from spendlog.errors import InsightError
from spendlog.models import Category, Expense, TimeFrame, to_amount


class InsightService(ABC):
    @abstractmethod
    async def categorize(self, description: str) -> tuple[Decimal, Category]:
        """Guess amount and category for a free-text description."""

    @abstractmethod
    async def answer_question(self, expenses: list[Expense], total: Decimal, question: str) -> str:
        """Answer a question about `expenses`, whose exact sum is `total`."""


class InsightContext(NamedTuple):
    expenses: list[Expense]
    total: Decimal


class InsightReply(NamedTuple):
    token: int
    value: object


def insight_context(expenses: Iterable[Expense], day: Optional[date] = None) -> InsightContext:
    """The current month's expenses and their exact total."""
    window = analytics.time_frame_window(TimeFrame.MONTH, day or date.today())
    selected = [e for e in expenses if analytics.in_window(e, window)]
    return InsightContext(selected, sum((e.amount for e in selected), Decimal(0)))


def parse_categorization(text: str) -> tuple[Decimal, Category]:
    """Decode a ``{"amount": 12.5, "category": "Food"}`` reply."""
    try:
        data = json.loads(text)
        return to_amount(data["amount"]), Category(data["category"])
    except (ValueError, KeyError, TypeError) as e:
        raise InsightError(f"Invalid categorization response: {e}") from e


class InsightCoordinator:
    """Runs collaborator calls with a timeout and tracks which reply is current.

    Each request gets an increasing token. Only the reply to the latest
    request is current; older ones should be discarded by the caller.
    No store lock is held while a call is in flight.
    """

    def __init__(self, service: InsightService, timeout: float = INSIGHT_TIMEOUT):
        self.service = service
        self.timeout = timeout
        self._tokens = itertools.count(1)
        self._latest = 0

    def is_current(self, token: int) -> bool:
        return token == self._latest

    async def _call(self, coro) -> InsightReply:
        token = self._latest = next(self._tokens)
        try:
            value = await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as e:
            raise InsightError(f"Insight request timed out after {self.timeout:g}s") from e
        except InsightError:
            raise
        except Exception as e:
            raise InsightError(f"Insight request failed: {e}") from e
        return InsightReply(token, value)

    async def categorize(self, description: str) -> InsightReply:
        return await self._call(self.service.categorize(description))

    async def suggest_category(self, description: str,
                               fallback: Optional[Category] = None) -> Optional[Category]:
        """Category for `description`; `fallback` when the service fails, or None if the reply is stale."""
        try:
            reply = await self.categorize(description)
        except InsightError:
            if fallback is None:
                raise
            return fallback
        if not self.is_current(reply.token):
            return None
        _, category = reply.value
        return category

    async def ask(self, expenses: Iterable[Expense], question: str,
                  day: Optional[date] = None) -> InsightReply:
        context = insight_context(expenses, day)
        return await self._call(
            self.service.answer_question(context.expenses, context.total, question)
        )
