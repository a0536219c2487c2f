"""Managers - request-facing business logic."""

from exchange_pool.managers.pool import PoolManager

__all__ = ["PoolManager"]
