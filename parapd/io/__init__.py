"""Result export."""

from .export import export_results, load_results

__all__ = ["export_results", "load_results"]
