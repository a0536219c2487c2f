"""Shared request/response base models.

The wire format is camelCase (``exchangeUrl``, ``pricePoint``).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PoolSelector(CamelModel):
    """Optional price-point selector for admin operations."""

    # Any value; PoolManager.resolve_pool_id rejects what is not a configured amount
    price_point: Any = None
