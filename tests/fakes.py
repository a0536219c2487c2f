"""Test doubles."""

from __future__ import annotations

import asyncio

from exchange_pool.creators.base import ItemCreator
from exchange_pool.errors import CreationError
from exchange_pool.models import ExchangeItem


class FakeCreator(ItemCreator):
    """Deterministic in-memory creator.

    Args:
        fail_calls: 1-based call numbers that raise CreationError
        always_fail: Every call raises CreationError
        gate: If set, each call waits for it before returning
        delay: Seconds to sleep per call
    """

    def __init__(
        self,
        *,
        fail_calls: set[int] | None = None,
        always_fail: bool = False,
        error_message: str = "Button still disabled after waiting",
        gate: asyncio.Event | None = None,
        delay: float = 0.0,
    ) -> None:
        self.fail_calls = fail_calls or set()
        self.always_fail = always_fail
        self.error_message = error_message
        self.gate = gate
        self.delay = delay
        self.calls: list[tuple[int, str | None]] = []
        self.created: list[ExchangeItem] = []
        self.closed = False

    async def create(self, amount: int, destination: str | None = None) -> ExchangeItem:
        self.calls.append((amount, destination))
        call_number = len(self.calls)

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.gate is not None:
            await self.gate.wait()

        if self.always_fail or call_number in self.fail_calls:
            raise CreationError(self.error_message)

        exchange_id = f"ex{amount}n{call_number}"
        item = ExchangeItem(
            id=exchange_id,
            exchange_id=exchange_id,
            exchange_url=f"https://simpleswap.io/exchange?id={exchange_id}",
            amount=amount,
        )
        self.created.append(item)
        return item

    async def close(self) -> None:
        self.closed = True


def make_item(n: int, amount: int = 25) -> ExchangeItem:
    exchange_id = f"item{n}"
    return ExchangeItem(
        id=exchange_id,
        exchange_id=exchange_id,
        exchange_url=f"https://simpleswap.io/exchange?id={exchange_id}",
        amount=amount,
    )
