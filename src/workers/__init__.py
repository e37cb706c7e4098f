# src/workers/__init__.py — v1
