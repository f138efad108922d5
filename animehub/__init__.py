"""Command line launcher for the AnimeHub server."""

from __future__ import annotations

__version__ = "1.0.0"
