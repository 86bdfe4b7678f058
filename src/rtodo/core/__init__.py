# src/rtodo/core/__init__.py
