"""
Serverless entrypoint for the renewal SMS webhooks.

Vercel's Python runtime imports this module and serves the ASGI ``app``.
"""
from __future__ import annotations

import os
import sys

# Deployed from the project root; the packages live under src/
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
src_path = os.path.join(project_root, "src")

if src_path not in sys.path:
    sys.path.insert(0, src_path)

from api.app import app

__all__ = ["app"]
