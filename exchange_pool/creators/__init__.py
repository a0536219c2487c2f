"""Item creators."""

from exchange_pool.creators.base import ItemCreator

__all__ = ["ItemCreator"]
