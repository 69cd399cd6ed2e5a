"""NCAAB power ratings: market-driven rating adjustments with cross-source team resolution."""

__version__ = "1.0.0"
