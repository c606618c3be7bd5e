"""
Per-node bookkeeping tables: neighbors, passively learned routes, and
already-seen data units.


Classes
-------
NeighborTable
    Neighbor id -> NeighborRecord, with staleness eviction and sorted views.
RouteCache
    Remote source id -> Gateway neighbor id, kept by Cluster Heads.
DedupSet
    Set of (sourceId, sequenceNumber) pairs already processed.


Notes
-----
Every scan that looks for "the smallest id" or "every neighbor with some
property" walks a view sorted by neighbor id, so the result never depends on
dictionary insertion order.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Optional, Set, Tuple
from gccluster.state import CH_COLOR, NeighborRecord, Role, UNASSIGNED
from gccluster import logger

#-----------------------------------------------------------------------------#

log = logger.addLog('table')

###############################################################################

class NeighborTable:
    """
    Mapping from neighbor id to its last advertised state.

    Attributes
    ----------
    ownerId : int
        Id of the node owning the table (used in log records only).


    Methods
    -------
    upsert(record)
        Insert or overwrite a neighbor with its freshest observation.
    pruneStale(now, timeout)
        Evict every record not heard for more than timeout.
    get(neighborId)
        Return the record for a neighbor or None.
    findByAddress(address)
        Return the neighbor id advertised from a transport address.
    sortedRecords()
        Records ordered by ascending neighbor id.
    """

    ## Constructor ===========================================================#
    def __init__(self, ownerId:int)->None:
        self.ownerId = ownerId
        self._records:Dict[int, NeighborRecord] = {}

    ## Special Methods =======================================================#
    def __len__(self)->int:
        return len(self._records)

    def __contains__(self, neighborId:int)->bool:
        return neighborId in self._records

    def __iter__(self)->Iterator[NeighborRecord]:
        return iter(self.sortedRecords())

    ## Methods ===============================================================#
    def upsert(self, record:NeighborRecord)->bool:
        """
        Insert or overwrite the record for record.neighborId.


        Returns
        -------
        isNew : bool
            True if the neighbor was not in the table before.
        """

        isNew = record.neighborId not in self._records
        self._records[record.neighborId] = record
        if (isNew):
            log.debug('%03d: new neighbor %d (color=%d, role=%s)',
                      self.ownerId, record.neighborId, record.color,
                      record.role.name)
        return isNew

    #--------------------------------------------------------------------------
    def pruneStale(self, now:float, timeout:float)->bool:
        """
        Remove every record with now - lastHeard > timeout.


        Parameters
        ----------
        now : float
            Current virtual time.
        timeout : float
            Staleness threshold.


        Returns
        -------
        changed : bool
            True if at least one record was evicted.
        """

        stale = [nid for nid, rec in sorted(self._records.items())
                 if rec.isStale(now, timeout)]
        for nid in stale:
            del self._records[nid]
            log.info('%03d: removing stale neighbor %d', self.ownerId, nid)
        return bool(stale)

    #--------------------------------------------------------------------------
    def get(self, neighborId:int)->Optional[NeighborRecord]:
        return self._records.get(neighborId)

    #--------------------------------------------------------------------------
    def findByAddress(self, address:str)->Optional[int]:
        """Return the id of the neighbor last heard from address, if any."""
        for rec in self.sortedRecords():
            if (rec.address == address):
                return rec.neighborId
        return None

    #--------------------------------------------------------------------------
    def sortedRecords(self)->List[NeighborRecord]:
        return [self._records[nid] for nid in sorted(self._records)]

    #--------------------------------------------------------------------------
    def usedColors(self)->Set[int]:
        """Colors currently advertised by neighbors (unassigned excluded)."""
        return {rec.color for rec in self._records.values()
                if rec.color != UNASSIGNED}

    #--------------------------------------------------------------------------
    def clusterHeadCandidates(self)->List[NeighborRecord]:
        """Neighbors advertising color 0, by ascending id."""
        return [rec for rec in self.sortedRecords() if rec.color == CH_COLOR]

    #--------------------------------------------------------------------------
    def withRole(self, *roles:Role)->List[NeighborRecord]:
        """Neighbors currently recorded with any of roles, by ascending id."""
        return [rec for rec in self.sortedRecords() if rec.role in roles]

    #--------------------------------------------------------------------------
    def clear(self)->None:
        self._records.clear()

###############################################################################

class RouteCache:
    """
    Best-effort hints from a remote source to the Gateway that reached it.

    Entries are written only when a data unit from the source is observed
    arriving from a neighbor recorded as Gateway. Lookups validate the hint
    against the live NeighborTable and evict it lazily when the Gateway is
    gone or no longer a Gateway.
    """

    def __init__(self, ownerId:int)->None:
        self.ownerId = ownerId
        self._routes:Dict[int, int] = {}

    def __len__(self)->int:
        return len(self._routes)

    def __contains__(self, destinationId:int)->bool:
        return destinationId in self._routes

    #--------------------------------------------------------------------------
    def learn(self, destinationId:int, gatewayId:int)->None:
        if (self._routes.get(destinationId) != gatewayId):
            log.debug('%03d: route hint %d via gateway %d', self.ownerId,
                      destinationId, gatewayId)
        self._routes[destinationId] = gatewayId

    #--------------------------------------------------------------------------
    def peek(self, destinationId:int)->Optional[int]:
        """Raw cached gateway id, without validation."""
        return self._routes.get(destinationId)

    #--------------------------------------------------------------------------
    def lookup(self, destinationId:int,
               neighbors:NeighborTable)->Tuple[Optional[int], bool]:
        """
        Return a valid gateway for destinationId.


        Parameters
        ----------
        destinationId : int
            Remote node to reach.
        neighbors : NeighborTable
            Live neighbor view used to validate the hint.


        Returns
        -------
        gatewayId : int or None
            Cached gateway if it is still a Gateway neighbor.
        evicted : bool
            True if a stale entry was found and removed.
        """

        gatewayId = self._routes.get(destinationId)
        if (gatewayId is None):
            return None, False
        rec = neighbors.get(gatewayId)
        if (rec is not None and rec.role == Role.GATEWAY):
            return gatewayId, False
        del self._routes[destinationId]
        log.warning('%03d: evicted stale route %d via %d', self.ownerId,
                    destinationId, gatewayId)
        return None, True

    #--------------------------------------------------------------------------
    def clear(self)->None:
        self._routes.clear()

###############################################################################

class DedupSet:
    """
    Record of (sourceId, sequenceNumber) pairs already processed.

    Grows without bound for the life of the node; nothing is aged out.
    """

    def __init__(self)->None:
        self._seen:Set[Tuple[int, int]] = set()

    def __len__(self)->int:
        return len(self._seen)

    def __contains__(self, key:Tuple[int, int])->bool:
        return key in self._seen

    def add(self, sourceId:int, sequenceNumber:int)->bool:
        """Record a pair. Returns False if it was already present."""
        key = (sourceId, sequenceNumber)
        if (key in self._seen):
            return False
        self._seen.add(key)
        return True

    def clear(self)->None:
        self._seen.clear()
