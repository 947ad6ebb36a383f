"""Nutrition-resolution engine: meal photos and descriptions to nutrition facts."""

__version__ = "0.1.0"
