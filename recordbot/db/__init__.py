"""Database access layer (DAL) for the record bot.

This sub-package encapsulates low-level DB interactions so that the chain and
sequence logic stays storage-agnostic.
"""
