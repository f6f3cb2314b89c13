"""Bundled SQLite implementation of the inventory store collaborator."""

from .db import InventoryDatabase

__all__ = ["InventoryDatabase"]
