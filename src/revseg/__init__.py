"""Top-level package for revenue attribution and account segmentation.

This module provides convenient imports for commonly used functionality
while keeping the main implementation in submodules under ``src/revseg``.
"""

from . import allocation, normalizer, revenue, schema, segments  # noqa: F401
from .pipeline import BatchResult, run_batch  # noqa: F401

__all__ = [
    "allocation",
    "normalizer",
    "revenue",
    "schema",
    "segments",
    "BatchResult",
    "run_batch",
]
