"""
In-process collaborators of a node: the virtual-time event scheduler and the
radio transport.

Nodes only ever talk to these through the narrow Scheduler and Transport
interfaces, so the same node code can run against a different clock or a
real socket transport.


Classes
-------
**Interfaces**
    Scheduler
        scheduleAt / cancelAll / now, consumed by nodes.
    Transport
        sendUnicast / sendMulticast / joinGroup, consumed by nodes.

**Implementations**
    EventScheduler
        Discrete-event virtual clock backed by a heap queue.
    RadioNetwork
        Shared-medium radio model: neighbor graph, transmission time, jitter,
        packet loss, delivery statistics.
    RadioPort
        Per-node Transport handle bound to one address on a RadioNetwork.
    NetQEntry
        Queue entry for a frame in flight.


Notes
-----
**Event Dispatch:**

Every scheduled event is a (time, owner, kind, payload) token. When the clock
reaches time, the scheduler calls owner.onTimer(kind, payload). Nodes use this
for their timers and delayed sends; RadioNetwork uses it for frame delivery,
which then calls node.onMessage(payload, senderAddress).

Events with equal times fire in the order they were scheduled.

**Radio Model:**

A frame sent at time t reaches each receiver at
t + (bytes * 8) / DATA_RATE + jitter. Unicast frames reach only their
addressed node and only if it is a radio neighbor of the sender; multicast
frames reach every radio neighbor that joined the group. Receivers must
listen on the destination port.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Sequence
from numpy.typing import NDArray
import heapq
import numpy as np
from gccluster import logger

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

log = logger.addLog('net')

###############################################################################

class Scheduler(ABC):
    """Virtual clock and timer service consumed by nodes."""

    @abstractmethod
    def now(self)->float:
        """Current virtual time, monotonic."""

    @abstractmethod
    def scheduleAt(self, time:float, owner:Any, kind:Any,
                   payload:Any = None)->int:
        """Fire owner.onTimer(kind, payload) at virtual time. Returns token."""

    @abstractmethod
    def cancelAll(self, owner:Any)->int:
        """Drop every pending event of owner. Returns how many."""

###############################################################################

class Transport(ABC):
    """Datagram transport consumed by nodes."""

    @abstractmethod
    def sendUnicast(self, payload:bytes, destAddress:str, port:int)->None:
        """Send payload to one address."""

    @abstractmethod
    def sendMulticast(self, payload:bytes, groupAddress:str, port:int)->None:
        """Send payload to every member of a multicast group in range."""

    @abstractmethod
    def joinGroup(self, groupAddress:str)->None:
        """Start receiving frames sent to groupAddress."""

###############################################################################

@dataclass
class _Event:
    __slots__ = ('time', 'owner', 'kind', 'payload', 'token')

    time: float
    owner: Any
    kind: Any
    payload: Any
    token: int

###############################################################################

class EventScheduler(Scheduler):
    """
    Discrete-event virtual clock.

    Attributes
    ----------
    eventsFired : int
        Number of events dispatched so far.


    Methods
    -------
    scheduleAt(time, owner, kind, payload)
        Queue an event.
    cancel(token)
        Drop one pending event.
    cancelAll(owner)
        Drop every pending event of owner.
    runUntil(endTime)
        Dispatch events in time order up to endTime.
    pending(owner)
        Count pending events.


    Notes
    -----
    Handlers run to completion one at a time; nothing is dispatched while a
    handler is running. Before each dispatch the clock and logger.simTime are
    advanced to the event time.
    """

    ## Constructor ===========================================================#
    def __init__(self, startTime:float = 0.0)->None:
        self._now = float(startTime)
        self._queue:List[tuple] = []
        self._cancelled:Set[int] = set()
        self._qid = 0
        self.eventsFired = 0

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        return (f"{self.__class__.__name__}(now={self._now}, "
                f"pending={self.pending()}, fired={self.eventsFired})")

    ## Methods ===============================================================#
    def now(self)->float:
        return self._now

    #--------------------------------------------------------------------------
    def scheduleAt(self, time:float, owner:Any, kind:Any,
                   payload:Any = None)->int:
        """
        Queue owner.onTimer(kind, payload) for virtual time.


        Raises
        ------
        ValueError
            If time is earlier than the current virtual time.
        """

        if (time < self._now):
            raise ValueError(f"cannot schedule in the past: {time} < "
                             f"{self._now}")
        self._qid += 1
        event = _Event(float(time), owner, kind, payload, self._qid)
        heapq.heappush(self._queue, (event.time, event.token, event))
        return event.token

    #--------------------------------------------------------------------------
    def cancel(self, token:int)->None:
        self._cancelled.add(token)

    #--------------------------------------------------------------------------
    def cancelAll(self, owner:Any)->int:
        kept = []
        removed = 0
        for entry in self._queue:
            _, token, event = entry
            if (event.owner is not owner):
                kept.append(entry)
            elif (token in self._cancelled):
                self._cancelled.discard(token)
            else:
                removed += 1
        self._queue = kept
        heapq.heapify(self._queue)
        return removed

    #--------------------------------------------------------------------------
    def pending(self, owner:Any = None)->int:
        """Number of queued events (of owner, if given)."""
        return sum(1 for _, token, ev in self._queue
                   if token not in self._cancelled and
                   (owner is None or ev.owner is owner))

    #--------------------------------------------------------------------------
    def runUntil(self, endTime:float)->int:
        """
        Dispatch queued events with time <= endTime, in time order.


        Parameters
        ----------
        endTime : float
            Virtual time to stop at. The clock is left at endTime.


        Returns
        -------
        fired : int
            Number of events dispatched during this call.
        """

        fired = 0
        while (self._queue and self._queue[0][0] <= endTime):
            _, token, event = heapq.heappop(self._queue)
            if (token in self._cancelled):
                self._cancelled.discard(token)
                continue
            self._now = event.time
            logger.simTime = f'{self._now:.3f}'
            event.owner.onTimer(event.kind, event.payload)
            fired += 1
        self.eventsFired += fired
        self._now = max(self._now, float(endTime))
        logger.simTime = f'{self._now:.3f}'
        return fired

###############################################################################

@dataclass
class NetQEntry:
    """
    Frame in flight from one sender to one receiver.

    Attributes
    ----------
    send_time : float
        Time the sender handed the frame to the radio.
    recv_time : float
        Time the frame is delivered.
    src_addr : str
        Sender address.
    dest_addr : str
        Receiver address.
    port : int
        Destination port.
    multicast : bool
        True if sent to a group.
    message : bytes
        Frame payload.
    """

    __slots__ = ('send_time', 'recv_time', 'src_addr', 'dest_addr', 'port',
                 'multicast', 'message')

    send_time: float
    recv_time: float
    src_addr: str
    dest_addr: str
    port: int
    multicast: bool
    message: bytes

###############################################################################

class RadioPort(Transport):
    """
    Transport handle of one attached node.

    Attributes
    ----------
    address : str
        Address the node is reachable at.
    node : object
        Receiver with onMessage(payload, senderAddress).
    port : int
        Port the node listens on.
    network : RadioNetwork
        Parent network.
    groups : set of str
        Multicast groups joined.
    position : ndarray or None
        (x, y) placement used for range-based linking.
    """

    def __init__(self, address:str, node:Any, port:int,
                 network:RadioNetwork,
                 position:Optional[Sequence[float]] = None)->None:
        self.address = address
        self.node = node
        self.port = port
        self.network = network
        self.groups:Set[str] = set()
        self.position = (None if position is None
                         else np.asarray(position, dtype=float))

    def sendUnicast(self, payload:bytes, destAddress:str, port:int)->None:
        self.network.transmit(payload, self.address, destAddress, port,
                              multicast=False)

    def sendMulticast(self, payload:bytes, groupAddress:str, port:int)->None:
        self.network.transmit(payload, self.address, groupAddress, port,
                              multicast=True)

    def joinGroup(self, groupAddress:str)->None:
        self.groups.add(groupAddress)

###############################################################################

class RadioNetwork:
    """
    Shared-medium radio network simulator with discrete-event delivery.

    Attributes
    ----------
    **Physical Layer Parameters:**

    DATA_RATE : int, default=250000
        Channel data rate (bits per second). Transmission time of a frame is
        (bytes * 8) / DATA_RATE.
    MAX_JITTER : float, default=0.0005
        Upper bound of the uniform per-receiver delivery jitter (s).
    PLR : float, default=0.0
        Packet loss ratio in [0, 1] for plrType='uniform'.
    TX_RANGE : float, default=100.0
        Radio range used by autoLink() for range-based neighbor graphs.

    **Configuration:**

    jitterType : {'uniform', 'off'}, default='uniform'
        Per-receiver delay strategy.
    plrType : {'uniform', 'off'}, default='off'
        Packet loss strategy.
    seed : int, optional
        Seed of the NumPy random generator.

    **Data Structures:**

    ports : dict
        address -> RadioPort of every attached node.
    links : dict
        address -> set of radio-neighbor addresses (symmetric).
    rng : numpy.random.Generator
        Generator for jitter and packet loss.

    **Statistics:**

    stats : dict
        Counters: packetSent, packetDelivered, packetDropPLR,
        packetUnreachable, packetWrongPort, packetFailedDel, multicastSent,
        unicastSent.


    Examples
    --------
    >>> sched = EventScheduler()
    >>> net = RadioNetwork(sched, jitterType='off', seed=1)
    >>> a = net.attach('10.0.0.1', nodeA)
    >>> b = net.attach('10.0.0.2', nodeB)
    >>> net.connect('10.0.0.1', '10.0.0.2')
    """

    ## Constructor ===========================================================#
    def __init__(self, scheduler:EventScheduler, **kwargs)->None:

        # Parameters
        self.DATA_RATE = 250000             # bits per second
        self.MAX_JITTER = 0.0005            # max delivery jitter (s)
        self.PLR = 0.0                      # packet loss ratio
        self.TX_RANGE = 100.0               # radio range (m)

        # Configurations
        self.jitterType = 'uniform'
        self.plrType = 'off'
        self.seed = np.random.SeedSequence().entropy

        self.__dict__.update(kwargs)

        # Data Structures
        self.scheduler = scheduler
        self.ports:Dict[str, RadioPort] = {}
        self.links:Dict[str, Set[str]] = {}
        self.rng = np.random.default_rng(self.seed)

        self.stats = {
            'packetSent': 0,                # frames queued for a receiver
            'packetDelivered': 0,           # frames handed to onMessage
            'packetDropPLR': 0,             # frames lost to PLR
            'packetUnreachable': 0,         # unicast to non-neighbor
            'packetWrongPort': 0,           # receiver not on dest port
            'packetFailedDel': 0,           # receiver handler raised
            'multicastSent': 0,             # multicast transmissions
            'unicastSent': 0,               # unicast transmissions
        }

        # Strategies
        jitterStrategies = {
            'uniform': self._jitterUniform,
            'off': self._jitterDisabled,
        }
        self._generateJitter = jitterStrategies[self.jitterType]

        plrStrategies = {
            'uniform': self._plrUniform,
            'off': self._plrDisabled,
        }
        self._applyPLR = plrStrategies[self.plrType]

        log.info('*** radio network ONLINE (jitter=%s, plr=%s, seed=%s) ***',
                 self.jitterType, self.plrType, self.seed)

    ## Special Methods =======================================================#
    def __str__(self)->str:
        cw = 18
        nLinks = sum(len(v) for v in self.links.values()) // 2
        if (self.jitterType == 'off'):
            jitterStatus = 'Disabled'
        else:
            jitterStatus = f"{self.MAX_JITTER} s  {self.jitterType}"
        if (self.plrType == 'off'):
            plrStatus = 'Disabled'
        else:
            plrStatus = f"{self.PLR:.2%}  {self.plrType}"
        out = [
            f"Radio network",
            f"{'Data Rate:':{cw}} {self.DATA_RATE} bps",
            f"{'Max Jitter:':{cw}} {jitterStatus}",
            f"{'Packet Loss:':{cw}} {plrStatus}",
            f"{'Nodes:':{cw}} {len(self.ports)}",
            f"{'Links:':{cw}} {nLinks}",
            f"{'RNG Seed:':{cw}} {self.seed}",
        ]
        line = '-' * max(len(l) for l in out)
        out.insert(1, line)
        out.append(line)
        return "\n".join(out)

    ## Methods ===============================================================#
    def attach(self, address:str, node:Any, port:int = 5000,
               position:Optional[Sequence[float]] = None)->RadioPort:
        """
        Attach a node to the network and return its transport handle.


        Parameters
        ----------
        address : str
            Unique address of the node.
        node : object
            Receiver with onMessage(payload, senderAddress).
        port : int
            Port the node listens on.
        position : sequence of float, optional
            (x, y) placement for autoLink().
        """

        if (address in self.ports):
            raise ValueError(f"address {address} already attached")
        radio = RadioPort(address, node, port, self, position)
        self.ports[address] = radio
        self.links.setdefault(address, set())
        log.debug('%s: attached on port %d', address, port)
        return radio

    #--------------------------------------------------------------------------
    def detach(self, address:str)->None:
        """Remove a node. Frames already in flight to it are lost."""
        self.ports.pop(address, None)
        log.debug('%s: detached', address)

    #--------------------------------------------------------------------------
    def reattach(self, radio:RadioPort)->None:
        """Put a previously detached handle back on the air."""
        self.ports[radio.address] = radio
        self.links.setdefault(radio.address, set())

    #--------------------------------------------------------------------------
    def connect(self, a:str, b:str)->None:
        """Make a and b radio neighbors of each other."""
        self.links.setdefault(a, set()).add(b)
        self.links.setdefault(b, set()).add(a)

    #--------------------------------------------------------------------------
    def disconnect(self, a:str, b:str)->None:
        self.links.get(a, set()).discard(b)
        self.links.get(b, set()).discard(a)

    #--------------------------------------------------------------------------
    def autoLink(self, txRange:Optional[float] = None)->int:
        """
        Rebuild links from node positions: nodes within txRange are
        neighbors.


        Returns
        -------
        nLinks : int
            Number of undirected links.
        """

        rng = self.TX_RANGE if txRange is None else txRange
        placed = [p for p in self.ports.values() if p.position is not None]
        self.links = {addr: set() for addr in self.ports}
        if not (placed):
            return 0
        pos = np.vstack([p.position for p in placed])
        dist = np.linalg.norm(pos[:, None, :] - pos[None, :, :], axis=2)
        nLinks = 0
        for i, j in zip(*np.nonzero(np.triu(dist <= rng, k=1))):
            self.connect(placed[i].address, placed[j].address)
            nLinks += 1
        log.info('autoLink: %d links within range %.1f', nLinks, rng)
        return nLinks

    #--------------------------------------------------------------------------
    def neighborsOf(self, address:str)->List[str]:
        """Attached radio neighbors of address, sorted."""
        return sorted(a for a in self.links.get(address, ())
                      if a in self.ports)

    #--------------------------------------------------------------------------
    def transmit(self, message:bytes, srcAddr:str, destAddr:str, port:int,
                 multicast:bool = False)->None:
        """
        Queue a frame for every receiver that can hear it.


        Parameters
        ----------
        message : bytes
            Frame payload.
        srcAddr : str
            Sender address.
        destAddr : str
            Receiver address, or group address if multicast.
        port : int
            Destination port.
        multicast : bool
            Deliver to all in-range group members instead of one address.
        """

        if (srcAddr not in self.ports):
            log.debug('%s: transmit while detached, dropped', srcAddr)
            return

        if (multicast):
            self.stats['multicastSent'] += 1
            receivers = [self.ports[a] for a in self.neighborsOf(srcAddr)
                         if destAddr in self.ports[a].groups]
        else:
            self.stats['unicastSent'] += 1
            if (destAddr not in self.neighborsOf(srcAddr)):
                log.debug('[%s:%s] UNREACHABLE', srcAddr, destAddr)
                self.stats['packetUnreachable'] += 1
                return
            receivers = [self.ports[destAddr]]

        if not (receivers):
            return

        now = self.scheduler.now()
        dataTime = (len(message) * 8) / self.DATA_RATE
        rxTime = now + dataTime + self._generateJitter(len(receivers))
        for radio, t in zip(receivers, rxTime):
            entry = NetQEntry(send_time=now, recv_time=float(t),
                              src_addr=srcAddr, dest_addr=radio.address,
                              port=port, multicast=multicast,
                              message=bytes(message))
            log.debug('[%s:%s] (@%.4fs) %d bytes', srcAddr, radio.address,
                      entry.recv_time, len(message))
            self.scheduler.scheduleAt(entry.recv_time, self, 'deliver', entry)
            self.stats['packetSent'] += 1

    #--------------------------------------------------------------------------
    def onTimer(self, kind:str, entry:NetQEntry)->None:
        """Scheduler callback: deliver one frame in flight."""

        radio = self.ports.get(entry.dest_addr)
        if (radio is None):
            self.stats['packetUnreachable'] += 1
            return
        if (radio.port != entry.port):
            self.stats['packetWrongPort'] += 1
            return
        if (self._applyPLR(entry)):
            return
        try:
            radio.node.onMessage(entry.message, entry.src_addr)
            self.stats['packetDelivered'] += 1
        except Exception as e:
            log.error('[%s:%s] MESSAGE DELIVERY FAILED: %s', entry.src_addr,
                      entry.dest_addr, str(e))
            self.stats['packetFailedDel'] += 1

    #--------------------------------------------------------------------------
    def getStatsReport(self)->str:
        """Return formatted multi-line delivery statistics."""

        cw = 22
        cw2 = 10
        sent = self.stats['packetSent']
        rate = (self.stats['packetDelivered'] / sent) if sent else 0.0
        report = [
            f"Radio network: Delivery Summary",
            f"{' Unicast TX:':{cw}} {self.stats['unicastSent']:>{cw2}}",
            f"{' Multicast TX:':{cw}} {self.stats['multicastSent']:>{cw2}}",
            f"{' Frames Queued:':{cw}} {sent:>{cw2}}",
            f"{' Delivered:':{cw}} {self.stats['packetDelivered']:>{cw2}}",
            f"{' Dropped (PLR):':{cw}} {self.stats['packetDropPLR']:>{cw2}}",
            f"{' Unreachable:':{cw}} "
            f"{self.stats['packetUnreachable']:>{cw2}}",
            f"{' Wrong Port:':{cw}} {self.stats['packetWrongPort']:>{cw2}}",
            f"{' Failed Delivery:':{cw}} "
            f"{self.stats['packetFailedDel']:>{cw2}}",
            f"{' Delivery Rate:':{cw}} {rate:>{cw2+1}.1%}",
        ]
        line = '-' * max(len(l) for l in report)
        report.insert(1, line)
        report.append(line)
        return "\n".join(report)

    ## Helper Methods ========================================================#
    def _jitterUniform(self, size:int)->NPFltArr:
        return self.rng.uniform(high=self.MAX_JITTER, size=size)

    def _jitterDisabled(self, size:int)->NPFltArr:
        return np.zeros(size)

    #--------------------------------------------------------------------------
    def _plrUniform(self, entry:NetQEntry)->bool:
        if (self.PLR <= 0):
            return False
        if (self.rng.random() < self.PLR):
            log.debug('[%s:%s] PACKET DROPPED (PLR:UNIF)', entry.src_addr,
                      entry.dest_addr)
            self.stats['packetDropPLR'] += 1
            return True
        return False

    def _plrDisabled(self, entry:NetQEntry)->bool:
        return False
