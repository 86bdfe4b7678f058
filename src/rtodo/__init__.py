# src/rtodo/__init__.py

"""Personal task list: SQLite persistence with gapped manual ordering, cross-window events, view store."""

__version__ = "0.1.0"
