"""Loomra: goals, tasks and habits on SQLite, with integrity-preserving deletes and atomic backup/restore."""
