"""Matplotlib-based visualisation of traced curves and reconstructed graphs.

Both helpers draw on top of an optional source image (``PIL.Image``, a file
path, or a NumPy array) and return a ``matplotlib.figure.Figure`` so the
caller can save, show, or embed the result in a notebook.

Typical usage::

    from structflo.recon.viz import plot_curves, plot_graph

    fig = plot_curves(curves, image)
    fig = plot_graph(rec.graph, image)
"""

from __future__ import annotations

import math
from typing import Sequence

import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from structflo.recon.pipeline.models import Curve, MolGraph
from structflo.recon.pipeline.sampler import ImageLike, _to_pil

# ── colour palette ──────────────────────────────────────────────────────────
BOND_COLOR: str = "royalblue"
AROMATIC_COLOR: str = "darkorange"
STEREO_COLOR: str = "crimson"
LABEL_COLOR: str = "darkgreen"
SOLID_COLOR: str = "black"
HOLE_COLOR: str = "gray"

# Offset between the drawn lines of a multiple bond, as a fraction of its length
_LINE_GAP = 0.08


# ── internal helpers ────────────────────────────────────────────────────────


def _prepare_axes(
    image: ImageLike | None,
    ax: plt.Axes | None,
    figsize: tuple[float, float],
    size: tuple[float, float],
) -> tuple[Figure, plt.Axes]:
    """Return *(figure, axes)* with image coordinates (y down) set up."""
    if ax is None:
        fig, ax = plt.subplots(1, 1, figsize=figsize)
    else:
        fig = ax.get_figure()
    if image is not None:
        ax.imshow(_to_pil(image), alpha=0.35)
    else:
        w, h = size
        ax.set_xlim(0, max(w, 1))
        ax.set_ylim(max(h, 1), 0)
        ax.set_aspect("equal")
    ax.axis("off")
    return fig, ax


def _draw_bond(ax: plt.Axes, graph: MolGraph, i: int) -> None:
    bond = graph.bonds[i]
    x0, y0, x1, y1 = graph.bond_coords(i)
    length = math.hypot(x1 - x0, y1 - y0)
    if length == 0:
        return
    if bond.aromatic:
        color = AROMATIC_COLOR
    elif bond.hashed or bond.wedged:
        color = STEREO_COLOR
    else:
        color = BOND_COLOR

    if bond.hashed:
        ax.plot([x0, x1], [y0, y1], color=color, linewidth=2, linestyle=(0, (1, 1.5)))
        return
    if bond.wedged:
        # Triangle from the narrow (a) end to the wide (b) end
        nx, ny = -(y1 - y0) / length, (x1 - x0) / length
        w = length * _LINE_GAP
        ax.fill(
            [x0, x1 + nx * w, x1 - nx * w],
            [y0, y1 + ny * w, y1 - ny * w],
            color=color,
        )
        return

    nx, ny = -(y1 - y0) / length, (x1 - x0) / length
    gap = length * _LINE_GAP
    offsets = [(k - (bond.order - 1) / 2) * gap for k in range(bond.order)]
    for off in offsets:
        ax.plot(
            [x0 + nx * off, x1 + nx * off],
            [y0 + ny * off, y1 + ny * off],
            color=color,
            linewidth=1.5,
            linestyle="--" if bond.up or bond.down else "-",
        )


# ── public API ──────────────────────────────────────────────────────────────


def plot_graph(
    graph: MolGraph,
    image: ImageLike | None = None,
    *,
    ax: plt.Axes | None = None,
    figsize: tuple[float, float] = (8, 8),
    show_indices: bool = False,
    title: str | None = None,
) -> Figure:
    """Draw the existing atoms and bonds of *graph*, optionally over *image*.

    Parameters
    ----------
    graph:
        Reconstructed graph, e.g. ``ReconPipeline.process(...).graph``.
    image:
        Source image (path, PIL, or ndarray) drawn faintly underneath.
    ax:
        Existing matplotlib axes to draw on.  A new figure is created when
        *None* (default).
    figsize:
        Figure size when creating a new figure.
    show_indices:
        Annotate unlabeled atoms with their arena index.
    title:
        Optional title.  Auto-generated when *None*.

    Returns
    -------
    matplotlib.figure.Figure
    """
    fig, ax = _prepare_axes(image, ax, figsize, (graph.width, graph.height))

    n_bonds = 0
    for i, _ in graph.live_bonds():
        _draw_bond(ax, graph, i)
        n_bonds += 1

    n_atoms = 0
    for i, atom in graph.live_atoms():
        n_atoms += 1
        if not atom.blank:
            text = atom.label
            if atom.charge:
                text += ("+" if atom.charge > 0 else "-") * abs(atom.charge)
            ax.text(
                atom.x,
                atom.y,
                text,
                color=LABEL_COLOR,
                fontsize=9,
                weight="bold",
                ha="center",
                va="center",
                bbox=dict(facecolor="white", alpha=0.8, pad=1, edgecolor="none"),
            )
        elif show_indices:
            ax.text(atom.x + 2, atom.y - 2, str(i), fontsize=7, color="dimgray")

    ax.set_title(title or f"{n_atoms} atoms, {n_bonds} bonds")
    fig.tight_layout()
    return fig


def plot_curves(
    curves: Sequence[Curve],
    image: ImageLike | None = None,
    *,
    ax: plt.Axes | None = None,
    figsize: tuple[float, float] = (8, 8),
    title: str | None = None,
) -> Figure:
    """Draw the candidate points of every traced curve as closed polylines.

    Solid outlines are black, holes gray; corner points are marked.
    """
    w = max((x for c in curves for x, _, _ in c.points()), default=0) + 1
    h = max((y for c in curves for _, y, _ in c.points()), default=0) + 1
    fig, ax = _prepare_axes(image, ax, figsize, (w, h))

    for curve in curves:
        pts = curve.points()
        if not pts:
            continue
        xs = [p[0] for p in pts] + [pts[0][0]]
        ys = [p[1] for p in pts] + [pts[0][1]]
        color = SOLID_COLOR if curve.solid else HOLE_COLOR
        ax.plot(xs, ys, color=color, linewidth=1)
        corners = [(x, y) for x, y, corner in pts if corner]
        if corners:
            ax.scatter([x for x, _ in corners], [y for _, y in corners], s=6, color=color)

    ax.set_title(title or f"{len(curves)} curves")
    fig.tight_layout()
    return fig
