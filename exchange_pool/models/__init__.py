"""Data models."""

from exchange_pool.models.item import ExchangeItem

__all__ = ["ExchangeItem"]
