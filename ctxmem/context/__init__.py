from __future__ import annotations

from .economics import Economics, aggregate, estimate_read_tokens
from .orchestrator import ContextGenerator, ContextRequest, build_generator, generate_context
from .render import AnsiFormatter, Formatter, PlainFormatter

__all__ = [
    "AnsiFormatter",
    "ContextGenerator",
    "ContextRequest",
    "Economics",
    "Formatter",
    "PlainFormatter",
    "aggregate",
    "build_generator",
    "estimate_read_tokens",
    "generate_context",
]
