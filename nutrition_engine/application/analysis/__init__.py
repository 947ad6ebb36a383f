"""Analysis use cases."""

from .analyze_meal import AnalyzeMealCommand, AnalyzeMealCommandHandler

__all__ = [
    "AnalyzeMealCommand",
    "AnalyzeMealCommandHandler",
]
