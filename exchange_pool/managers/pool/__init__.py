"""Pool manager."""

from exchange_pool.managers.pool.pool import (
    AddOneResult,
    ConsumeResult,
    InitResult,
    PoolManager,
)

__all__ = ["AddOneResult", "ConsumeResult", "InitResult", "PoolManager"]
