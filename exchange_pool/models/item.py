"""ExchangeItem - one ready-to-redeem exchange.

Serialized with camelCase keys so snapshots stay readable by older
pool servers sharing the same ``exchange-pool.json``.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from exchange_pool.utils.datetime import utcnow


class ExchangeItem(BaseModel):
    """Immutable record produced by an item creator."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    exchange_id: str = Field(alias="exchangeId")
    exchange_url: str = Field(alias="exchangeUrl")
    amount: int
    created: datetime = Field(default_factory=utcnow)

    def to_record(self) -> dict:
        """JSON-ready dict in the on-disk format."""
        return self.model_dump(mode="json", by_alias=True)
