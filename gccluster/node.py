"""
Clustering node actor.

A ClusterNode owns one node's protocol state and reacts to exactly two kinds
of input: timer firings delivered by the Scheduler and frames delivered by the
Transport. It never blocks; any future work is a scheduled timer.


Classes
-------
ClusterNode
    Self-healing graph-coloring cluster node with data-plane routing.


Notes
-----
**Timers:**

.. code-block:: none

    HELLO         periodic   multicast own Advertisement
    COLOR         one-shot   initial coloring + role pass
    MAINTENANCE   periodic   prune stale neighbors, recolor, resolve role
    DATA          periodic   originate a synthetic DataUnit
    FORWARD       one-shot   jittered send of one routed copy

Periodic timers reschedule themselves at the end of their own handler and are
only cancelled by stop().

**Message handling:**

- Advertisement: upsert the sender into the NeighborTable and re-resolve the
  role against the fresh view. Recoloring waits for the next COLOR or
  MAINTENANCE pass.
- DataUnit: map the sender address to a neighbor id and hand the unit to the
  DataPlaneRouter; perform the returned transmissions.
- Malformed payloads are logged and dropped.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional, Sequence
import numpy as np
from gccluster.coloring import chooseColor, resolveRole
from gccluster.config import ClusterConfig
from gccluster.messages import (Advertisement, DataUnit, MessageError,
                                parseMessage, writeAdvertisement,
                                writeDataUnit)
from gccluster.network import Scheduler, Transport
from gccluster.routing import (DataPlaneRouter, DropReason, Outcome,
                               RouteDecision, Transmission)
from gccluster.state import (NO_NEXT_HOP, NeighborRecord, NodeState, Role,
                             TimerKind, UNASSIGNED)
from gccluster.tables import NeighborTable
from gccluster import logger

#-----------------------------------------------------------------------------#

log = logger.addLog('node')

###############################################################################

class ClusterNode:
    """
    One node of the clustering protocol.


    Parameters
    ----------
    nodeId : int
        Stable node identifier. Smaller ids win color ties.
    config : ClusterConfig, optional
        Validated options. Defaults to ClusterConfig().
    scheduler : Scheduler
        Virtual clock and timer service.
    transport : Transport, optional
        Datagram transport. May be bound after construction, but must be set
        before start().
    destinationIds : sequence of int, optional
        Candidate destinations for synthetic traffic. Own id is ignored.
    seed : int, optional
        Seed of the node's NumPy random generator (jitter and destination
        draws).


    Attributes
    ----------
    state : NodeState
        Own id, color, role, cluster and sequence counter.
    neighbors : NeighborTable
        1-hop view built from advertisements.
    router : DataPlaneRouter
        Routing logic, owns the RouteCache and DedupSet.
    rng : numpy.random.Generator
        Source of every random draw of this node.
    running : bool
        True between start() and stop().
    stats : dict
        Local counters: advertSent, advertReceived, malformed, originated,
        delivered, sent, and dropped (DropReason value -> count, plus
        'vanished' for delayed sends whose target left the table).
    deliveries : list of tuple
        (sourceId, sequenceNumber, latency) of every unit delivered here.


    Raises
    ------
    ConfigError
        If config does not validate.


    Examples
    --------
    >>> sched = EventScheduler()
    >>> net = RadioNetwork(sched, jitterType='off')
    >>> node = ClusterNode(1, ClusterConfig(), sched)
    >>> node.transport = net.attach('10.0.0.1', node)
    >>> node.start()
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 nodeId:int,
                 config:Optional[ClusterConfig] = None,
                 scheduler:Optional[Scheduler] = None,
                 transport:Optional[Transport] = None,
                 destinationIds:Optional[Sequence[int]] = None,
                 seed:Optional[int] = None,
                 )->None:

        if (config is None):
            config = ClusterConfig()
        config.validate()

        self.config = config
        self.scheduler = scheduler
        self.transport = transport
        self.destinationIds = [d for d in (destinationIds or ())
                               if d != nodeId]
        self.rng = np.random.default_rng(seed)

        self.state = NodeState(nodeId)
        self.neighbors = NeighborTable(nodeId)
        self.router = DataPlaneRouter(self.state, self.neighbors)
        self.running = False

        self.stats:Dict[str, Any] = {}
        self.deliveries:List[tuple] = []
        self._resetStats()

        self._handlers = {
            TimerKind.HELLO: self._onHello,
            TimerKind.COLOR: self._onColor,
            TimerKind.MAINTENANCE: self._onMaintenance,
            TimerKind.DATA: self._onData,
            TimerKind.FORWARD: self._onForward,
        }

    ## Properties ============================================================#
    @property
    def id(self)->int:
        return self.state.id

    @property
    def color(self)->int:
        return self.state.color

    @property
    def role(self)->Role:
        return self.state.role

    @property
    def clusterId(self)->int:
        return self.state.clusterId

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}(id={self.id}, color={self.color}, "
                f"role={self.role.name}, cluster={self.clusterId})")

    ## Methods ===============================================================#
    def start(self)->None:
        """
        Join the multicast group and schedule the node's timers.

        The first advertisement goes out after a random spread in
        [0, helloJitter]; the one-shot coloring pass after coloringInterval
        plus a spread in [0, coloringJitter]; the first maintenance pass one
        maintenanceInterval after start. Data generation is only scheduled
        when dataInterval > 0 and there is at least one destination.
        """

        if (self.running):
            return
        if (self.scheduler is None or self.transport is None):
            raise RuntimeError(f"node {self.id}: scheduler and transport "
                               f"must be set before start()")

        cfg = self.config
        now = self.scheduler.now()
        self.transport.joinGroup(cfg.multicastGroup)

        if (cfg.helloInterval > 0):
            self._schedule(now + self._spread(cfg.helloJitter),
                           TimerKind.HELLO)
        self._schedule(now + cfg.coloringInterval +
                       self._spread(cfg.coloringJitter), TimerKind.COLOR)
        self._schedule(now + cfg.maintenanceInterval, TimerKind.MAINTENANCE)
        if (cfg.dataInterval > 0 and self.destinationIds):
            self._schedule(now + cfg.dataInterval +
                           self._spread(cfg.dataJitter), TimerKind.DATA)

        self.running = True
        log.info('%03d: started', self.id)

    #--------------------------------------------------------------------------
    def stop(self)->None:
        """Cancel every pending timer of this node and log a final report."""

        if (self.scheduler is not None):
            cancelled = self.scheduler.cancelAll(self)
        else:
            cancelled = 0
        wasRunning = self.running
        self.running = False
        if (wasRunning):
            log.info('%03d: stopped (%d timers cancelled)', self.id, cancelled)
            log.info(self.getReport())

    #--------------------------------------------------------------------------
    def reset(self)->None:
        """
        Forget color, role, neighbors, routes and seen units.

        The sequence counter is kept so that units originated after a restart
        are not mistaken for duplicates of earlier ones.
        """

        self.state.reset()
        self.neighbors.clear()
        self.router.routeCache.clear()
        self.router.dedup.clear()

    #--------------------------------------------------------------------------
    def onTimer(self, kind:TimerKind, payload:Any = None)->None:
        """Scheduler callback: run the handler of a timer kind."""
        self._handlers[kind](payload)

    #--------------------------------------------------------------------------
    def onMessage(self, payload:bytes, senderAddress:str)->None:
        """
        Transport callback: handle one received frame.


        Parameters
        ----------
        payload : bytes
            Raw frame.
        senderAddress : str
            Transport address of the immediate sender.
        """

        try:
            msg = parseMessage(payload)
        except MessageError as e:
            self.stats['malformed'] += 1
            log.warning('%03d: dropping malformed frame from %s: %s',
                        self.id, senderAddress, e)
            return

        if (isinstance(msg, Advertisement)):
            self._onAdvertisement(msg, senderAddress)
        else:
            self._onDataUnit(msg, senderAddress)

    #--------------------------------------------------------------------------
    def originate(self, destinationId:int)->RouteDecision:
        """
        Create a new DataUnit for destinationId and route it.


        Returns
        -------
        RouteDecision
            Decision taken for the new unit (already carried out).
        """

        unit = DataUnit(sourceId=self.id,
                        sequenceNumber=self.state.nextSequence(),
                        ttl=self.config.dataTtl,
                        destinationId=destinationId,
                        nextHopId=NO_NEXT_HOP,
                        created=self.scheduler.now())
        self.stats['originated'] += 1
        log.debug('%03d: originating %s for %d', self.id, unit.key,
                  destinationId)
        decision = self.router.originate(unit)
        self._execute(decision, unit)
        return decision

    #--------------------------------------------------------------------------
    def updateColor(self)->None:
        """Run one ColoringEngine step and apply the result."""
        newColor = chooseColor(self.state.color, self.neighbors, self.id)
        self._setColor(newColor)

    #--------------------------------------------------------------------------
    def updateRole(self)->None:
        """
        Run the RoleResolver and apply role, cluster and possibly the color
        reset of an Undecided demotion.
        """

        decision = resolveRole(self.state.color, self.id, self.neighbors)
        if (decision.demoted and self.state.color != UNASSIGNED):
            log.info('%03d: no cluster head visible, demoted to undecided '
                     '(color %d reset)', self.id, self.state.color)
        self._setColor(decision.color)

        if (decision.role != self.state.role or
                decision.clusterId != self.state.clusterId):
            log.info('%03d: role %s -> %s (cluster %d -> %d)', self.id,
                     self.state.role.name, decision.role.name,
                     self.state.clusterId, decision.clusterId)
        self.state.role = decision.role
        self.state.clusterId = decision.clusterId

    #--------------------------------------------------------------------------
    def advertisement(self)->Advertisement:
        """Own current Advertisement."""
        s = self.state
        return Advertisement(s.id, s.color, s.role, s.clusterId)

    #--------------------------------------------------------------------------
    def getReport(self)->str:
        """Return formatted multi-line node summary."""

        cw = 16
        drops = ", ".join(f"{k}={v}" for k, v in self.stats['dropped'].items()
                          if v)
        report = [
            f"Node {self.id:03d}: Summary",
            f"{' Color:':{cw}} {self.color}",
            f"{' Role:':{cw}} {self.role.name}",
            f"{' Cluster:':{cw}} {self.clusterId}",
            f"{' Neighbors:':{cw}} {len(self.neighbors)}",
            f"{' Routes:':{cw}} {len(self.router.routeCache)}",
            f"{' Adverts TX/RX:':{cw}} {self.stats['advertSent']}/"
            f"{self.stats['advertReceived']}",
            f"{' Originated:':{cw}} {self.stats['originated']}",
            f"{' Delivered:':{cw}} {self.stats['delivered']}",
            f"{' Sent:':{cw}} {self.stats['sent']}",
            f"{' Dropped:':{cw}} {drops if drops else 'none'}",
        ]
        line = '-' * max(len(l) for l in report)
        report.insert(1, line)
        report.append(line)
        return "\n".join(report)

    ## Timer Handlers ========================================================#
    def _onHello(self, payload:Any = None)->None:
        cfg = self.config
        self.transport.sendMulticast(writeAdvertisement(self.advertisement()),
                                     cfg.multicastGroup, cfg.destPort)
        self.stats['advertSent'] += 1
        self._schedule(self.scheduler.now() + cfg.helloInterval +
                       self._spread(cfg.helloJitter), TimerKind.HELLO)

    #--------------------------------------------------------------------------
    def _onColor(self, payload:Any = None)->None:
        self.updateColor()
        self.updateRole()

    #--------------------------------------------------------------------------
    def _onMaintenance(self, payload:Any = None)->None:
        cfg = self.config
        self.neighbors.pruneStale(self.scheduler.now(), cfg.neighborTimeout)
        self.updateColor()
        self.updateRole()
        self._schedule(self.scheduler.now() + cfg.maintenanceInterval,
                       TimerKind.MAINTENANCE)

    #--------------------------------------------------------------------------
    def _onData(self, payload:Any = None)->None:
        cfg = self.config
        dest = int(self.rng.choice(self.destinationIds))
        self.originate(dest)
        self._schedule(self.scheduler.now() + cfg.dataInterval +
                       self._spread(cfg.dataJitter), TimerKind.DATA)

    #--------------------------------------------------------------------------
    def _onForward(self, tx:Transmission)->None:
        self._transmit(tx)

    ## Helper Methods ========================================================#
    def _onAdvertisement(self, advert:Advertisement, address:str)->None:
        if (advert.senderId == self.id):
            return
        self.stats['advertReceived'] += 1
        self.neighbors.upsert(NeighborRecord(
            neighborId=advert.senderId,
            address=address,
            color=advert.color,
            role=advert.role,
            clusterId=advert.clusterId,
            lastHeard=self.scheduler.now()))
        self.updateRole()

    #--------------------------------------------------------------------------
    def _onDataUnit(self, unit:DataUnit, address:str)->None:
        senderId = self.neighbors.findByAddress(address)
        decision = self.router.receive(unit, senderId)
        self._execute(decision, unit)

    #--------------------------------------------------------------------------
    def _execute(self, decision:RouteDecision, unit:DataUnit)->None:
        """Carry out a RouteDecision: count, deliver, send or defer."""

        if (decision.outcome == Outcome.DELIVERED):
            latency = self.scheduler.now() - unit.created
            self.stats['delivered'] += 1
            self.deliveries.append((unit.sourceId, unit.sequenceNumber,
                                    latency))
            log.info('%03d: delivered %s from %d (latency %.4f s)', self.id,
                     unit.key, unit.sourceId, latency)
            return

        if (decision.outcome == Outcome.DROPPED):
            self.stats['dropped'][decision.reason.value] += 1
            return

        for tx in decision.transmissions:
            if (tx.delayed):
                delay = self._spread(self.config.forwardJitter)
                log.debug('%03d: deferring %s to %d by %.4f s', self.id,
                          tx.unit.key, tx.targetId, delay)
                self._schedule(self.scheduler.now() + delay,
                               TimerKind.FORWARD, tx)
            else:
                self._transmit(tx)

    #--------------------------------------------------------------------------
    def _transmit(self, tx:Transmission)->None:
        """Send one routed copy if its target is still a neighbor."""

        cfg = self.config
        target = self.neighbors.get(tx.targetId)
        if (target is None):
            self.stats['dropped']['vanished'] += 1
            log.warning('%03d: neighbor %d gone before send, dropping %s',
                        self.id, tx.targetId, tx.unit.key)
            return

        frame = writeDataUnit(tx.unit)
        if (tx.multicast):
            self.transport.sendMulticast(frame, cfg.multicastGroup,
                                         cfg.destPort)
        else:
            self.transport.sendUnicast(frame, target.address, cfg.destPort)
        self.stats['sent'] += 1

    #--------------------------------------------------------------------------
    def _setColor(self, newColor:int)->None:
        if (newColor != self.state.color):
            log.info('%03d: color %d -> %d', self.id, self.state.color,
                     newColor)
            self.state.color = newColor

    #--------------------------------------------------------------------------
    def _schedule(self, time:float, kind:TimerKind,
                  payload:Any = None)->int:
        return self.scheduler.scheduleAt(time, self, kind, payload)

    #--------------------------------------------------------------------------
    def _spread(self, high:float)->float:
        """Uniform random delay in [0, high]; 0 when high is 0."""
        if (high <= 0):
            return 0.0
        return float(self.rng.uniform(0.0, high))

    #--------------------------------------------------------------------------
    def _resetStats(self)->None:
        self.stats = {
            'advertSent': 0,
            'advertReceived': 0,
            'malformed': 0,
            'originated': 0,
            'delivered': 0,
            'sent': 0,
            'dropped': {r.value: 0 for r in DropReason},
        }
        self.stats['dropped']['vanished'] = 0
