"""
Classifier feedback learning for family content monitoring.

Turns human corrections of the content classifier into per-family
confidence adjustments and anonymized cross-family pattern aggregates.
"""

__version__ = "1.0.0"
