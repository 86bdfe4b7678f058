# src/rtodo/cli/__init__.py
