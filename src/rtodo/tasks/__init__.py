# src/rtodo/tasks/__init__.py
