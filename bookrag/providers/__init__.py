"""Concrete adapters for the interfaces in :mod:`bookrag.interfaces`."""
