# -*- coding: utf-8 -*-
"""
fabisearch.viz
==============

3D rendering of an estimated network on atlas coordinates.

Nodes are drawn at their MNI coordinates, coloured by community, and
edges are drawn for every adjacent pair whose two endpoints belong to
the plotted communities.  A brain-frame point cloud can be drawn behind
the network for orientation.

The atlas and the brain frame are read-only resources loaded by the
caller (``load_atlas``, ``load_brain_frame``) and passed in explicitly.
The 333-region Gordon atlas is the usual choice; any atlas
table with MNI coordinates and a community column works.

Functions
---------
load_atlas
    CSV → DataFrame with x_mni, y_mni, z_mni, community.
load_brain_frame
    .npy / .csv → (n, 3) point cloud.
network_edges
    Adjacency matrix → admitted (i, j) edges.
plot_network_3d
    Adjacency matrix + atlas → 3D figure.

References
----------
- Gordon et al. (2016). Cereb Cortex 26:288-303. Gordon parcellation.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np
import pandas as pd

from .config import DEFAULT_COLORS
from .exceptions import InvalidInputError

ATLAS_COLUMNS = ["x_mni", "y_mni", "z_mni", "community"]


# =============================================================================
# RESOURCES
# =============================================================================

def load_atlas(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load an atlas table of node coordinates and communities.

    Column names are normalized (lower case, dots to underscores), so the
    dotted ``x.mni`` / capitalized ``Community`` headers are accepted.

    Returns
    -------
    pd.DataFrame with columns x_mni, y_mni, z_mni, community.
    """
    atlas = pd.read_csv(path)
    atlas.columns = [str(c).strip().lower().replace(".", "_") for c in atlas.columns]
    missing = [c for c in ATLAS_COLUMNS if c not in atlas.columns]
    if missing:
        raise InvalidInputError(f"Atlas {path} lacks column(s): {missing}")
    return atlas[ATLAS_COLUMNS].reset_index(drop=True)


def load_brain_frame(path: Union[str, Path]) -> np.ndarray:
    """Load a brain-frame point cloud (n, 3) from .npy or .csv."""
    path = Path(path)
    if path.suffix == ".npy":
        coords = np.load(path)
    else:
        coords = pd.read_csv(path).to_numpy(dtype=float)
    if coords.ndim != 2 or coords.shape[1] != 3:
        raise InvalidInputError(
            f"Brain frame must have shape (n, 3), got {coords.shape}"
        )
    return coords


# =============================================================================
# EDGES
# =============================================================================

def network_edges(
    adj: np.ndarray,
    nodes: Optional[Sequence[int]] = None,
) -> List[Tuple[int, int]]:
    """
    Edges of an adjacency matrix.

    Only off-diagonal lower-triangle entries equal to 1 count; with
    ``nodes`` given, both endpoints must be among them.
    """
    lower = np.tril(np.asarray(adj) == 1, k=-1).astype(int)
    G = nx.from_numpy_array(lower)
    if nodes is not None:
        G = G.subgraph(nodes)
    return sorted((min(i, j), max(i, j)) for i, j in G.edges())


# =============================================================================
# 3D PLOT
# =============================================================================

def plot_network_3d(
    adj: np.ndarray,
    atlas: pd.DataFrame,
    communities: Optional[Sequence[str]] = None,
    colors: Optional[Sequence[str]] = None,
    brain_frame: Optional[np.ndarray] = None,
    ax=None,
    figsize: Tuple[float, float] = (8, 8),
    title: str = "",
    node_size: float = 40,
    edge_alpha: float = 0.4,
) -> Tuple[plt.Figure, object]:
    """
    Plot an adjacency matrix as a 3D network on atlas coordinates.

    Parameters
    ----------
    adj : np.ndarray (N, N)
        Adjacency matrix; entries equal to 1 are edges.
    atlas : pd.DataFrame
        N rows with x_mni, y_mni, z_mni, community (see ``load_atlas``).
    communities : sequence of str, optional
        Communities to plot, in legend order.  Default: all, in order of
        first appearance in the atlas.
    colors : sequence of str, optional
        One colour per community.  Default: ``config.DEFAULT_COLORS``.
    brain_frame : np.ndarray (n, 3), optional
        Point cloud drawn in grey behind the network.
    ax : Axes3D, optional
    figsize : tuple
    title : str
    node_size : float
    edge_alpha : float

    Returns
    -------
    fig, ax
    """
    adj = np.asarray(adj)
    n = len(atlas)
    if adj.ndim != 2 or adj.shape != (n, n):
        raise InvalidInputError(
            f"Adjacency shape {adj.shape} does not match the {n}-node atlas"
        )

    labels = atlas["community"].astype(str).to_numpy()
    coords = atlas[["x_mni", "y_mni", "z_mni"]].to_numpy(dtype=float)

    if communities is None:
        communities = list(pd.unique(labels))
    unknown = [c for c in communities if c not in set(labels)]
    if unknown:
        raise InvalidInputError(f"Communities not in atlas: {unknown}")

    colors = list(DEFAULT_COLORS if colors is None else colors)
    if len(colors) < len(communities):
        raise InvalidInputError(
            f"{len(communities)} communities but only {len(colors)} colours"
        )

    if ax is None:
        fig = plt.figure(figsize=figsize)
        ax = fig.add_subplot(projection="3d")
    else:
        fig = ax.figure

    if brain_frame is not None:
        ax.scatter(
            brain_frame[:, 0], brain_frame[:, 1], brain_frame[:, 2],
            c="grey", s=0.1, alpha=0.7,
        )

    for community, color in zip(communities, colors):
        idx = labels == community
        ax.scatter(
            coords[idx, 0], coords[idx, 1], coords[idx, 2],
            c=color, s=node_size, label=community, depthshade=False,
        )

    nodes = np.flatnonzero(np.isin(labels, list(communities)))
    for i, j in network_edges(adj, nodes):
        ax.plot(
            coords[[i, j], 0], coords[[i, j], 1], coords[[i, j], 2],
            color="black", linewidth=1, alpha=edge_alpha,
        )

    ax.legend(loc="upper right", frameon=False)
    ax.set_axis_off()
    if title:
        ax.set_title(title)
    return fig, ax
