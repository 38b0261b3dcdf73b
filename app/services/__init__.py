"""Inbox services: normalization, storage, locking and dispatch."""
