# src/split/__init__.py — v1
