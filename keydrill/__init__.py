"""
keydrill: adaptive n-gram typing drill scheduler.

Picks the next n-gram to practice with Thompson sampling over per-n-gram
Beta posteriors and finds a corpus word that exercises it.
"""

__version__ = "0.1.0"
