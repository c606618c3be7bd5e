"""
Greedy self-healing graph coloring and the role state machine derived from it.

Both computations are pure functions of (own color, own id, neighbor
snapshot). They never draw random numbers, so identical inputs always give
identical outputs; all randomness in the protocol lives in scheduling jitter.


Functions
---------
**Coloring:**

    chooseColor(currentColor, neighbors, nodeId)
        Return the next color for a node.
    hasConflict(currentColor, neighbors, nodeId)
        True if a smaller-id neighbor shares currentColor.
    smallestFreeColor(used, start)
        Smallest integer >= start not in used.

**Roles:**

    resolveRole(color, nodeId, neighbors)
        Return the RoleDecision (role, cluster, possibly demoted color).


Notes
-----
**Coloring rules, in priority order:**

1. Conflict: a neighbor with a smaller id holds the same color. The smaller id
   always wins, so this node must recolor.
2. (Re)coloring: an uncolored or conflicting node takes the smallest color not
   used by any neighbor.
3. Cluster-Head recovery: a colored, non-conflicting node with no neighbor on
   color 0 claims color 0 directly. Simultaneous claimants are separated by
   rule 1 on a later pass.
4. Compaction: otherwise a node on color > 0 moves down to the smallest free
   color >= 1 if that is lower than its current one. Color 0 stays reserved
   for Cluster Heads and a node never moves up.

**Role state machine:**

.. code-block:: none

    color unassigned                      -> UNDECIDED, no cluster
    color 0                               -> CLUSTER_HEAD, cluster = own id
    color > 0, no color-0 neighbor        -> UNDECIDED, color reset
                                             (Undecided demotion)
    color > 0, CH = smallest color-0 id:
        a neighbor reports other cluster  -> GATEWAY
        otherwise                         -> MEMBER

Undecided demotion deliberately throws away a valid color when the node
loses sight of every Cluster Head, which forces a fresh greedy pick on the
next maintenance pass.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Set
from gccluster.state import CH_COLOR, NO_CLUSTER, Role, UNASSIGNED
from gccluster.tables import NeighborTable

###############################################################################

@dataclass(frozen=True)
class RoleDecision:
    """
    Outcome of resolveRole().

    Attributes
    ----------
    role : Role
        Resolved role.
    clusterId : int
        Id of the chosen Cluster Head, own id for a Cluster Head, or
        NO_CLUSTER.
    color : int
        Color to keep. Equals the input color except after Undecided
        demotion, where it is UNASSIGNED.
    """

    role: Role
    clusterId: int
    color: int

    @property
    def demoted(self)->bool:
        return self.role == Role.UNDECIDED and self.color == UNASSIGNED

###############################################################################

def smallestFreeColor(used:Iterable[int], start:int = 0)->int:
    """Return the smallest integer >= start that is not in used."""

    taken = set(used)
    candidate = start
    while (candidate in taken):
        candidate += 1
    return candidate

###############################################################################

def hasConflict(currentColor:int, neighbors:NeighborTable, nodeId:int)->bool:
    """
    Check whether this node lost a color tie-break.


    Parameters
    ----------
    currentColor : int
        This node's color.
    neighbors : NeighborTable
        Current neighbor snapshot.
    nodeId : int
        This node's id.


    Returns
    -------
    bool
        True if a neighbor with a numerically smaller id holds currentColor.
    """

    if (currentColor == UNASSIGNED):
        return False
    return any(rec.color == currentColor and rec.neighborId < nodeId
               for rec in neighbors.sortedRecords())

###############################################################################

def chooseColor(currentColor:int, neighbors:NeighborTable, nodeId:int)->int:
    """
    Compute this node's next color from its 1-hop view.


    Parameters
    ----------
    currentColor : int
        Current color, or UNASSIGNED.
    neighbors : NeighborTable
        Current neighbor snapshot.
    nodeId : int
        This node's id (tie-break priority).


    Returns
    -------
    newColor : int
        Possibly unchanged color. Never UNASSIGNED.


    Notes
    -----
    See the module notes for the four rules. The function is deterministic.
    """

    used:Set[int] = neighbors.usedColors()

    # Uncolored, or lost a tie-break to a smaller id
    if (currentColor == UNASSIGNED or
            hasConflict(currentColor, neighbors, nodeId)):
        return smallestFreeColor(used, 0)

    # Cluster-Head recovery
    if (CH_COLOR not in used and currentColor != CH_COLOR):
        return CH_COLOR

    # Compaction (move down only)
    if (currentColor > CH_COLOR):
        candidate = smallestFreeColor(used, CH_COLOR + 1)
        if (candidate < currentColor):
            return candidate

    return currentColor

###############################################################################

def resolveRole(color:int, nodeId:int, neighbors:NeighborTable)->RoleDecision:
    """
    Derive role and cluster from own color and the neighbor snapshot.


    Parameters
    ----------
    color : int
        This node's color, or UNASSIGNED.
    nodeId : int
        This node's id.
    neighbors : NeighborTable
        Current neighbor snapshot.


    Returns
    -------
    RoleDecision
        Role, cluster id and the color to keep. Idempotent: the same inputs
        always produce the same decision.


    Notes
    -----
    Only single-hop Cluster Heads are ever chosen. Among several visible
    color-0 neighbors the smallest id wins. Any neighbor reporting a
    different cluster, including one that reports no cluster yet, makes this
    node a Gateway.
    """

    if (color == UNASSIGNED):
        return RoleDecision(Role.UNDECIDED, NO_CLUSTER, UNASSIGNED)

    if (color == CH_COLOR):
        return RoleDecision(Role.CLUSTER_HEAD, nodeId, color)

    candidates = neighbors.clusterHeadCandidates()
    if not (candidates):
        # Undecided demotion
        return RoleDecision(Role.UNDECIDED, NO_CLUSTER, UNASSIGNED)

    clusterId = candidates[0].neighborId
    foreign = any(rec.clusterId != clusterId
                  for rec in neighbors.sortedRecords())
    role = Role.GATEWAY if foreign else Role.MEMBER
    return RoleDecision(role, clusterId, color)
