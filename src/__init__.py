"""Top-level package for the listing renewal SMS engine."""
from __future__ import annotations

__version__ = "1.0.0"

__all__ = [
    "api",
    "core",
    "outreach",
    "scheduler",
    "services",
]
