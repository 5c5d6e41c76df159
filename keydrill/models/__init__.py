"""
Models package for keydrill.

This package contains the drill's data models and the scheduling logic
that operates on them.
"""

__all__ = [
    "BanditSelector",
    "DrillConfig",
    "KeystrokeSession",
    "NgramIndexer",
    "PerformanceStore",
    "WordResolver",
]

from keydrill.models.drill_config import DrillConfig
from keydrill.models.ngram import NgramIndexer
from keydrill.models.performance import PerformanceStore
from keydrill.models.selector import BanditSelector
from keydrill.models.session import KeystrokeSession
from keydrill.models.word_resolver import WordResolver
