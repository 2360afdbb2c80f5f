"""
Generation module for tube-tracker.

Study notes and tests are produced by an external generator endpoint,
validated into immutable models and cached in the remote store.

Usage:
    from tube_tracker.generation import GeneratorClient, GenerationCache, CacheKind
"""

from tube_tracker.generation.cache import CacheKind, GenerationCache
from tube_tracker.generation.generator import GeneratorClient
from tube_tracker.generation.models import (
    Notes,
    PerformanceLevel,
    Question,
    TestRecord,
    TestResult,
    parse_questions,
)

__all__ = [
    "GeneratorClient",
    "GenerationCache",
    "CacheKind",
    "Notes",
    "Question",
    "TestRecord",
    "TestResult",
    "PerformanceLevel",
    "parse_questions",
]
