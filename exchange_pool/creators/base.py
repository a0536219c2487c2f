"""Item creator base class - external exchange creation abstraction.

A creator is responsible ONLY for producing one exchange. It does NOT handle:
- Retry/backoff
- Timeouts across attempts
- Pool bookkeeping or persistence

Those live in the Replenisher.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from exchange_pool.models import ExchangeItem


class ItemCreator(ABC):
    """Abstract creator interface.

    Implementations must be safe to call repeatedly in immediate
    succession, for different pools.
    """

    @abstractmethod
    async def create(self, amount: int, destination: str | None = None) -> "ExchangeItem":
        """Create one exchange for ``amount`` USD paying out to ``destination``.

        Args:
            amount: Creation parameter of the pool (USD amount)
            destination: Wallet address; implementations fall back to their
                configured default when None

        Returns:
            The created exchange

        Raises:
            CreationError: On any step failure
        """
        ...

    async def close(self) -> None:
        """Release resources held by the creator."""
        return None
