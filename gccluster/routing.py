"""
Data-plane routing over the cluster hierarchy.

The router decides, for every data unit a node originates or receives,
whether to deliver it locally, drop it, or hand copies to neighbors. It
never touches the transport or the clock itself: each decision is returned
as a RouteDecision listing Transmissions, and the owning node performs them,
drawing jitter for the ones marked delayed.


Classes
-------
Outcome
    DELIVERED, FORWARDED or DROPPED.
DropReason
    Why a unit was dropped.
Transmission
    One copy to hand to one neighbor.
RouteDecision
    Outcome, optional drop reason, and the transmissions to perform.
DataPlaneRouter
    Receive-side and send-side routing for one node.


Notes
-----
**Receive pipeline (every arriving unit):**

1. Route learning (Cluster Head only): sender is a Gateway neighbor ->
   RouteCache[sourceId] = sender.
2. Addressing filter: explicit next hop set and not this node -> drop.
3. Duplicate filter: (sourceId, sequenceNumber) already seen -> drop, except
   a Gateway receiving its own unit back from its own Cluster Head.
4. Delivery: destination is this node -> deliver.
5. Member stop: Member (and Undecided) nodes never relay -> drop.
6. TTL: ttl <= 0 -> drop.
7. Forwarding by role (Cluster Head or Gateway), TTL decremented once.

**Cluster Head decision tree (relay and origination):**

- destination is a neighbor: immediate unicast;
- valid RouteCache hint: delayed unicast to that Gateway;
- otherwise: delayed multicast copy addressed to every Gateway neighbor.

**Gateway relay:**

- from own Cluster Head (outbound): delayed multicast copy to every neighbor
  of another cluster holding role Gateway or Cluster Head;
- from anywhere else (inbound): immediate unicast to own Cluster Head.

Delayed copies are the speculative or multi-recipient ones. A single,
confidently-addressed unicast is always immediate.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional
from gccluster.messages import DataUnit
from gccluster.state import NO_NEXT_HOP, NodeState, Role
from gccluster.tables import DedupSet, NeighborTable, RouteCache
from gccluster import logger

#-----------------------------------------------------------------------------#

log = logger.addLog('route')

###############################################################################

class Outcome(Enum):
    DELIVERED = 'delivered'
    FORWARDED = 'forwarded'
    DROPPED = 'dropped'

###############################################################################

class DropReason(Enum):
    ADDRESSING = 'addressing'       # explicit next hop is another node
    DUPLICATE = 'duplicate'         # (source, sequence) already processed
    MEMBER_STOP = 'member_stop'     # non-backbone node never relays
    TTL_EXPIRED = 'ttl_expired'     # hop budget exhausted
    ORPHANED = 'orphaned'           # own Cluster Head not reachable
    NO_ROUTE = 'no_route'           # no neighbor to hand the unit to

###############################################################################

@dataclass(frozen=True)
class Transmission:
    """
    One copy of a unit for one neighbor.

    Attributes
    ----------
    unit : DataUnit
        Copy to send, next hop already set to targetId.
    targetId : int
        Neighbor expected to process the copy.
    delayed : bool
        Defer by a random jitter before sending.
    multicast : bool
        Send on the multicast group (overheard by all, processed by
        targetId only) instead of unicast to targetId's address.
    """

    unit: DataUnit
    targetId: int
    delayed: bool = False
    multicast: bool = False

###############################################################################

@dataclass
class RouteDecision:
    outcome: Outcome
    reason: Optional[DropReason] = None
    transmissions: List[Transmission] = field(default_factory=list)

    @classmethod
    def drop(cls, reason:DropReason)->RouteDecision:
        return cls(Outcome.DROPPED, reason)

###############################################################################

class DataPlaneRouter:
    """
    Routing logic of one node.

    Reads the node's NodeState and NeighborTable (owned by the node) and owns
    the RouteCache and DedupSet.


    Parameters
    ----------
    state : NodeState
        Live state of the owning node.
    neighbors : NeighborTable
        Live neighbor table of the owning node.


    Attributes
    ----------
    routeCache : RouteCache
        Source id -> Gateway hints learned from received traffic.
    dedup : DedupSet
        (sourceId, sequenceNumber) pairs already processed.


    Methods
    -------
    receive(unit, senderId)
        Route a unit that arrived from a neighbor.
    originate(unit)
        Route a unit this node just created.
    """

    ## Constructor ===========================================================#
    def __init__(self, state:NodeState, neighbors:NeighborTable)->None:
        self.state = state
        self.neighbors = neighbors
        self.routeCache = RouteCache(state.id)
        self.dedup = DedupSet()

    ## Methods ===============================================================#
    def receive(self, unit:DataUnit, senderId:Optional[int])->RouteDecision:
        """
        Route a unit received from a neighbor.


        Parameters
        ----------
        unit : DataUnit
            Decoded unit as received.
        senderId : int or None
            Neighbor id the unit arrived from, None if the sender address is
            not in the neighbor table.


        Returns
        -------
        RouteDecision
        """

        me = self.state

        # 1. Route learning
        if (me.role == Role.CLUSTER_HEAD and senderId is not None and
                unit.sourceId != me.id):
            sender = self.neighbors.get(senderId)
            if (sender is not None and sender.role == Role.GATEWAY):
                self.routeCache.learn(unit.sourceId, senderId)

        # 2. Addressing filter
        if (unit.nextHopId != NO_NEXT_HOP and unit.nextHopId != me.id):
            return RouteDecision.drop(DropReason.ADDRESSING)

        # 3. Duplicate filter
        if (unit.key in self.dedup):
            if not (self._isReturningOwnUnit(unit, senderId)):
                log.debug('%03d: duplicate %s from %s', me.id, unit.key,
                          senderId)
                return RouteDecision.drop(DropReason.DUPLICATE)
            log.debug('%03d: re-admitting own unit %s from cluster head %d',
                      me.id, unit.key, senderId)
        else:
            self.dedup.add(*unit.key)

        # 4. Delivery
        if (unit.destinationId == me.id):
            return RouteDecision(Outcome.DELIVERED)

        # 5. Member stop
        if (me.role in (Role.MEMBER, Role.UNDECIDED)):
            return RouteDecision.drop(DropReason.MEMBER_STOP)

        # 6. TTL
        if (unit.ttl <= 0):
            log.debug('%03d: ttl expired for %s', me.id, unit.key)
            return RouteDecision.drop(DropReason.TTL_EXPIRED)

        # 7. Forwarding
        relay = unit.ttl - 1
        if (me.role == Role.CLUSTER_HEAD):
            return self._clusterHeadForward(unit, relay)
        return self._gatewayForward(unit, relay, senderId)

    #--------------------------------------------------------------------------
    def originate(self, unit:DataUnit)->RouteDecision:
        """
        Route a unit created by this node.

        Members and Gateways always uplink to their own Cluster Head. A
        Cluster Head uses the same local / cached / flood tree as when
        relaying. The unit is recorded in the DedupSet before it leaves so
        that its echo is recognized.


        Parameters
        ----------
        unit : DataUnit
            New unit with sourceId equal to this node's id.


        Returns
        -------
        RouteDecision
        """

        me = self.state
        self.dedup.add(*unit.key)

        if (unit.destinationId == me.id):
            return RouteDecision(Outcome.DELIVERED)

        if (me.role == Role.CLUSTER_HEAD):
            return self._clusterHeadForward(unit, unit.ttl)

        if (me.role in (Role.MEMBER, Role.GATEWAY)):
            ch = self.neighbors.get(me.clusterId)
            if (ch is None):
                log.warning('%03d: orphaned, cluster head %d not reachable, '
                            'dropping %s', me.id, me.clusterId, unit.key)
                return RouteDecision.drop(DropReason.ORPHANED)
            return RouteDecision(Outcome.FORWARDED, transmissions=[
                Transmission(unit.addressedTo(ch.neighborId), ch.neighborId)])

        log.warning('%03d: undecided, no cluster head, dropping %s',
                    me.id, unit.key)
        return RouteDecision.drop(DropReason.ORPHANED)

    ## Helper Methods ========================================================#
    def _isReturningOwnUnit(self, unit:DataUnit,
                            senderId:Optional[int])->bool:
        """Own unit coming back to a Gateway from its own Cluster Head."""
        me = self.state
        return (unit.sourceId == me.id and
                me.role == Role.GATEWAY and
                senderId is not None and
                senderId == me.clusterId)

    #--------------------------------------------------------------------------
    def _clusterHeadForward(self, unit:DataUnit, ttl:int)->RouteDecision:
        """
        Local / cached / flood decision of a Cluster Head.

        ttl is the TTL the outgoing copies carry (one less than received when
        relaying, unchanged when originating).
        """

        me = self.state
        dest = unit.destinationId
        base = DataUnit(unit.sourceId, unit.sequenceNumber, ttl, dest,
                        NO_NEXT_HOP, unit.created)

        # Destination in range
        if (dest in self.neighbors):
            return RouteDecision(Outcome.FORWARDED, transmissions=[
                Transmission(base.addressedTo(dest), dest)])

        # Cached backbone hint
        gatewayId, _ = self.routeCache.lookup(dest, self.neighbors)
        if (gatewayId is not None):
            log.debug('%03d: %s via cached gateway %d', me.id, unit.key,
                      gatewayId)
            return RouteDecision(Outcome.FORWARDED, transmissions=[
                Transmission(base.addressedTo(gatewayId), gatewayId,
                             delayed=True)])

        # Flood to every Gateway
        gateways = self.neighbors.withRole(Role.GATEWAY)
        if not (gateways):
            log.debug('%03d: no gateway to flood %s', me.id, unit.key)
            return RouteDecision.drop(DropReason.NO_ROUTE)
        return RouteDecision(Outcome.FORWARDED, transmissions=[
            Transmission(base.addressedTo(gw.neighborId), gw.neighborId,
                         delayed=True, multicast=True)
            for gw in gateways])

    #--------------------------------------------------------------------------
    def _gatewayForward(self, unit:DataUnit, ttl:int,
                        senderId:Optional[int])->RouteDecision:
        """Bridge outbound units to foreign backbones, inbound ones home."""

        me = self.state
        base = DataUnit(unit.sourceId, unit.sequenceNumber, ttl,
                        unit.destinationId, NO_NEXT_HOP, unit.created)

        # Outbound: leaving this cluster through this Gateway
        if (senderId is not None and senderId == me.clusterId):
            targets = [rec for rec in self.neighbors.withRole(
                           Role.GATEWAY, Role.CLUSTER_HEAD)
                       if rec.clusterId != me.clusterId]
            if not (targets):
                return RouteDecision.drop(DropReason.NO_ROUTE)
            return RouteDecision(Outcome.FORWARDED, transmissions=[
                Transmission(base.addressedTo(rec.neighborId),
                             rec.neighborId, delayed=True, multicast=True)
                for rec in targets])

        # Inbound: arriving from a foreign backbone
        ch = self.neighbors.get(me.clusterId)
        if (ch is None):
            log.warning('%03d: cluster head %d gone, dropping inbound %s',
                        me.id, me.clusterId, unit.key)
            return RouteDecision.drop(DropReason.ORPHANED)
        return RouteDecision(Outcome.FORWARDED, transmissions=[
            Transmission(base.addressedTo(ch.neighborId), ch.neighborId)])
