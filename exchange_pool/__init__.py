"""SimpleSwap exchange pool server."""

__version__ = "4.1.0"
