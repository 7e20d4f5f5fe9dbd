"""CLI UI components for terminal-based pipeline visualization.

This package provides rich terminal views for:
- Canvas graphs as trees, with the validated path highlighted
- Execution plans as tables
"""

from flowplan.cli_ui.graph_renderer import PlanTableRenderer, TerminalGraphRenderer

__all__ = [
    "TerminalGraphRenderer",
    "PlanTableRenderer",
]
