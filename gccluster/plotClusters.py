"""
Visualization functions for clustering simulation results.

Provides a topology view of the final cluster structure and a time-series
view of how colors and roles evolved during the run.


Functions
---------
plotTopology(positions, links, colors, roles, nodeIds, figNo, fileName, title)
    Draw nodes and radio links, colored by cluster color, marked by role.
plotColorHistory(times, colors, nodeIds, figNo, fileName)
    Plot each node's color against virtual time.


Utility Functions
-----------------
cm2inch(value)
    Convert centimeters to inches for figure sizing.


Notes
-----
Default plot parameters (figure size, DPI, legend size) are defined as
module-level globals and can be modified before calling plot functions.
Both functions return the Figure and leave showing or closing it to the
caller.
"""

from typing import Dict, Optional, Sequence, Tuple
from numpy.typing import NDArray
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from matplotlib.lines import Line2D
import numpy as np
from gccluster.state import Role, UNASSIGNED
from gccluster import logger

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

# Global Variables
log = logger.addLog('plot')

# Plot Parameters
legendSize = 9          # legend size
figSize1 = [20, 20]     # topology figure size in cm
figSize2 = [25, 13]     # history figure size in cm
dpiValue = 150          # figure dpi value

# Role markers
roleMarkers = {
    Role.CLUSTER_HEAD: 's',
    Role.GATEWAY: 'D',
    Role.MEMBER: 'o',
    Role.UNDECIDED: 'x',
}

###############################################################################

def cm2inch(value:float)->float:
    """Convert centimeters to inches for matplotlib figure sizing."""
    return value / 2.54

###############################################################################

def plotTopology(positions:Dict[int, Sequence[float]],
                 links:Sequence[Tuple[int, int]],
                 colors:Dict[int, int],
                 roles:Dict[int, Role],
                 nodeIds:Optional[Sequence[int]] = None,
                 figNo:int = 1,
                 fileName:Optional[str] = None,
                 title:str = 'Cluster topology',
                 )->Figure:
    """
    Draw the network graph with cluster colors and roles.


    Parameters
    ----------
    positions : dict
        Node id -> (x, y).
    links : sequence of (int, int)
        Undirected radio links between node ids.
    colors : dict
        Node id -> color (UNASSIGNED allowed).
    roles : dict
        Node id -> Role.
    nodeIds : sequence of int, optional
        Nodes to draw (default: every id in positions).
    figNo : int, default=1
        Figure number.
    fileName : str, optional
        If given, the figure is saved there.
    title : str
        Axes title.


    Returns
    -------
    fig : matplotlib.figure.Figure


    Notes
    -----
    - Color 0 (Cluster Heads) is drawn with the first entry of the tab10
      cycle; uncolored nodes are drawn grey.
    - Marker shapes: square = Cluster Head, diamond = Gateway,
      circle = Member, cross = Undecided.
    - Links between two backbone nodes are drawn solid, all others dashed.
    """

    if (nodeIds is None):
        nodeIds = sorted(positions)
    cmap = plt.get_cmap('tab10')

    fig = plt.figure(figNo,
                     figsize=(cm2inch(figSize1[0]), cm2inch(figSize1[1])),
                     dpi=dpiValue)
    fig.clf()
    ax = fig.add_subplot(1, 1, 1)

    # Links
    for a, b in links:
        if (a not in positions or b not in positions):
            continue
        pa = np.asarray(positions[a], dtype=float)
        pb = np.asarray(positions[b], dtype=float)
        backbone = (roles.get(a, Role.UNDECIDED).isBackbone and
                    roles.get(b, Role.UNDECIDED).isBackbone)
        ax.plot([pa[0], pb[0]], [pa[1], pb[1]],
                linestyle='-' if backbone else '--',
                linewidth=1.2 if backbone else 0.6,
                color='k', alpha=0.6 if backbone else 0.3, zorder=1)

    # Nodes
    for nid in nodeIds:
        x, y = np.asarray(positions[nid], dtype=float)[:2]
        color = colors.get(nid, UNASSIGNED)
        role = roles.get(nid, Role.UNDECIDED)
        face = 'grey' if color == UNASSIGNED else cmap(color % cmap.N)
        ax.scatter(x, y, s=140, marker=roleMarkers[role], color=face,
                   edgecolors='k' if role != Role.UNDECIDED else None,
                   zorder=2)
        ax.annotate(f'{nid}', (x, y), textcoords='offset points',
                    xytext=(6, 6), fontsize=8)

    handles = [Line2D([], [], linestyle='', marker=m, color='k',
                      label=r.name.replace('_', ' ').title())
               for r, m in roleMarkers.items()]
    ax.legend(handles=handles, fontsize=legendSize, loc='best')
    ax.set_title(title, fontsize=12)
    ax.set_xlabel('x (m)')
    ax.set_ylabel('y (m)')
    ax.set_aspect('equal', adjustable='datalim')
    ax.grid(alpha=0.3)

    if (fileName is not None):
        fig.savefig(fileName)
        log.info('Saved topology plot: %s', fileName)
    return fig

###############################################################################

def plotColorHistory(times:NPFltArr,
                     colors:NDArray,
                     nodeIds:Sequence[int],
                     figNo:int = 2,
                     fileName:Optional[str] = None,
                     )->Figure:
    """
    Plot node colors versus virtual time.


    Parameters
    ----------
    times : ndarray, shape (T,)
        Sample times (s).
    colors : ndarray, shape (T, n)
        Color of each node at each sample time, UNASSIGNED (-1) if uncolored.
    nodeIds : sequence of int
        Node id of each column.
    figNo : int, default=2
        Figure number.
    fileName : str, optional
        If given, the figure is saved there.


    Returns
    -------
    fig : matplotlib.figure.Figure
    """

    times = np.asarray(times, dtype=float)
    colors = np.asarray(colors)

    fig = plt.figure(figNo,
                     figsize=(cm2inch(figSize2[0]), cm2inch(figSize2[1])),
                     dpi=dpiValue)
    fig.clf()

    ax1 = fig.add_subplot(2, 1, 1)
    for col, nid in enumerate(nodeIds):
        ax1.step(times, colors[:, col], where='post', label=f'{nid}')
    ax1.set_ylabel('Color')
    ax1.grid()
    if (len(nodeIds) <= 12):
        ax1.legend(fontsize=legendSize, ncol=4, loc='upper right')

    # Number of Cluster Heads and uncolored nodes over time
    ax2 = fig.add_subplot(2, 1, 2)
    ax2.step(times, np.sum(colors == 0, axis=1), where='post',
             label='Cluster heads')
    ax2.step(times, np.sum(colors == UNASSIGNED, axis=1), where='post',
             label='Uncolored')
    ax2.set_xlabel('Time (s)', fontsize=12)
    ax2.set_ylabel('Nodes')
    ax2.legend(fontsize=legendSize)
    ax2.grid()

    fig.suptitle('Color history')

    if (fileName is not None):
        fig.savefig(fileName)
        log.info('Saved color history plot: %s', fileName)
    return fig
