# src/rtodo/view/__init__.py
