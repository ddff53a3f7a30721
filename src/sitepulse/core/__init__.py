# src/sitepulse/core/__init__.py
"""Core infrastructure: configuration, logging, clocks, storage and the client-side stores."""
