"""Visualisation helpers for structflo-recon.

Quick access::

    from structflo.recon.viz import plot_graph, plot_curves
"""

from structflo.recon.viz.graph import plot_curves, plot_graph

__all__ = [
    "plot_curves",
    "plot_graph",
]
