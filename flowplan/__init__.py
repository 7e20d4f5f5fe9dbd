"""flowplan - workflow graph engine.

Validates visual pipeline graphs and resolves them into ordered operation
lists for a column-oriented data processing backend.
"""

__version__ = "0.1.0"
