"""
Node-local state types for the graph-coloring clustering protocol.

Defines the closed enumerations used on the wire and in the role state
machine, the sentinel values for "not yet known" fields, and the two record
types owned by a node: its own NodeState and the NeighborRecord entries kept
in its NeighborTable.


Classes
-------
Role
    Cluster role of a node. Encoded on the wire as an integer in 0..3.
TimerKind
    Periodic and one-shot activities a node asks the scheduler to fire.
NodeState
    Identity, color, role and origination counter of a single node.
NeighborRecord
    Last advertised state of a radio neighbor and when it was heard.


Notes
-----
Colors are non-negative integers once assigned. Color 0 is reserved for
Cluster Heads. UNASSIGNED (-1) marks a node that has not colored itself yet,
or that was demoted back to Undecided because no Cluster Head was visible.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum, IntEnum

#-----------------------------------------------------------------------------#

# Sentinels
UNASSIGNED = -1         # color not yet assigned
NO_CLUSTER = -1         # not attached to any Cluster Head
NO_NEXT_HOP = -1        # data unit has no explicit next hop (flood/overhear)

# Color reserved for Cluster Heads
CH_COLOR = 0

###############################################################################

class Role(IntEnum):
    """Cluster role. Values are the wire encoding."""

    UNDECIDED = 0
    CLUSTER_HEAD = 1
    MEMBER = 2
    GATEWAY = 3

    @property
    def isBackbone(self)->bool:
        """True for roles that carry inter-cluster traffic."""
        return self in (Role.CLUSTER_HEAD, Role.GATEWAY)

###############################################################################

class TimerKind(Enum):
    """Scheduled activities of a node."""

    HELLO = 'hello'                 # periodic advertisement
    COLOR = 'color'                 # one-shot initial coloring pass
    MAINTENANCE = 'maintenance'     # periodic prune + recolor + role
    DATA = 'data'                   # periodic synthetic traffic
    FORWARD = 'forward'             # jittered delayed send (carries payload)

###############################################################################

@dataclass
class NodeState:
    """
    State owned exclusively by one node for its whole lifetime.

    Attributes
    ----------
    id : int
        Stable node identifier.
    color : int
        Current color, or UNASSIGNED.
    role : Role
        Current cluster role.
    clusterId : int
        Id of the Cluster Head this node belongs to, or NO_CLUSTER.
    sequenceCounter : int
        Next sequence number for originated data units.
    """

    id: int
    color: int = UNASSIGNED
    role: Role = Role.UNDECIDED
    clusterId: int = NO_CLUSTER
    sequenceCounter: int = 0

    #--------------------------------------------------------------------------
    @property
    def isColored(self)->bool:
        return self.color != UNASSIGNED

    #--------------------------------------------------------------------------
    def nextSequence(self)->int:
        """Return the next origination sequence number and advance."""
        seq = self.sequenceCounter
        self.sequenceCounter += 1
        return seq

    #--------------------------------------------------------------------------
    def reset(self)->None:
        """Forget color, role and cluster (used when a node is revived)."""
        self.color = UNASSIGNED
        self.role = Role.UNDECIDED
        self.clusterId = NO_CLUSTER

###############################################################################

@dataclass
class NeighborRecord:
    """
    Freshest observation of a radio neighbor.

    Attributes
    ----------
    neighborId : int
        Advertised node id of the neighbor.
    address : str
        Transport address the advertisement arrived from.
    color : int
        Advertised color (UNASSIGNED if the neighbor is uncolored).
    role : Role
        Advertised role.
    clusterId : int
        Advertised Cluster Head id, or NO_CLUSTER.
    lastHeard : float
        Virtual time of the most recent advertisement.
    """

    __slots__ = ('neighborId', 'address', 'color', 'role', 'clusterId',
                 'lastHeard')

    neighborId: int
    address: str
    color: int
    role: Role
    clusterId: int
    lastHeard: float

    #--------------------------------------------------------------------------
    def isStale(self, now:float, timeout:float)->bool:
        """True once the record has not been refreshed for over timeout."""
        return (now - self.lastHeard) > timeout
