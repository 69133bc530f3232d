"""Compliance document Q&A: hybrid retrieval, grounded answers, per-session history."""

from __future__ import annotations

__version__ = "0.1.0"
