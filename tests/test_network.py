"""EventScheduler ordering and RadioNetwork delivery."""

import pytest
from gccluster import logger
from gccluster.network import EventScheduler, RadioNetwork

###############################################################################

class Recorder:
    """Timer owner and message receiver that records every callback."""

    def __init__(self, scheduler=None):
        self.scheduler = scheduler
        self.timers = []
        self.messages = []

    def onTimer(self, kind, payload=None):
        now = self.scheduler.now() if self.scheduler else None
        self.timers.append((now, kind, payload))

    def onMessage(self, payload, senderAddress):
        now = self.scheduler.now() if self.scheduler else None
        self.messages.append((now, payload, senderAddress))

###############################################################################

class Exploding:
    def onMessage(self, payload, senderAddress):
        raise RuntimeError('handler failure')

###############################################################################

def test_events_fire_in_time_order(scheduler):
    rec = Recorder(scheduler)
    scheduler.scheduleAt(2.0, rec, 'b')
    scheduler.scheduleAt(1.0, rec, 'a')
    scheduler.scheduleAt(3.0, rec, 'c', payload=7)
    assert scheduler.runUntil(10.0) == 3
    assert rec.timers == [(1.0, 'a', None), (2.0, 'b', None), (3.0, 'c', 7)]
    assert scheduler.now() == 10.0

#------------------------------------------------------------------------------

def test_ties_fire_in_scheduling_order(scheduler):
    rec = Recorder(scheduler)
    for kind in 'xyz':
        scheduler.scheduleAt(1.0, rec, kind)
    scheduler.runUntil(1.0)
    assert [k for _, k, _ in rec.timers] == ['x', 'y', 'z']

#------------------------------------------------------------------------------

def test_run_until_leaves_later_events(scheduler):
    rec = Recorder(scheduler)
    scheduler.scheduleAt(1.0, rec, 'a')
    scheduler.scheduleAt(5.0, rec, 'b')
    scheduler.runUntil(2.0)
    assert len(rec.timers) == 1
    assert scheduler.pending() == 1
    assert scheduler.now() == 2.0
    assert logger.simTime == '2.000'

#------------------------------------------------------------------------------

def test_cannot_schedule_in_the_past(scheduler):
    scheduler.runUntil(5.0)
    with pytest.raises(ValueError):
        scheduler.scheduleAt(4.0, Recorder(scheduler), 'late')

#------------------------------------------------------------------------------

def test_cancel_and_cancel_all(scheduler):
    a, b = Recorder(scheduler), Recorder(scheduler)
    token = scheduler.scheduleAt(1.0, a, 'one')
    scheduler.scheduleAt(2.0, a, 'two')
    scheduler.scheduleAt(3.0, b, 'three')
    scheduler.cancel(token)
    assert scheduler.pending(a) == 1
    assert scheduler.cancelAll(a) == 1
    assert scheduler.pending(a) == 0
    scheduler.runUntil(10.0)
    assert a.timers == []
    assert [k for _, k, _ in b.timers] == ['three']

#------------------------------------------------------------------------------

def test_handlers_can_schedule_more_events(scheduler):
    class Ticker(Recorder):
        def onTimer(self, kind, payload=None):
            super().onTimer(kind, payload)
            self.scheduler.scheduleAt(self.scheduler.now() + 1.0, self, kind)

    t = Ticker(scheduler)
    scheduler.scheduleAt(0.0, t, 'tick')
    scheduler.runUntil(4.5)
    assert [now for now, _, _ in t.timers] == [0.0, 1.0, 2.0, 3.0, 4.0]

###############################################################################

def _pair(radio, scheduler, port=5000):
    a, b = Recorder(scheduler), Recorder(scheduler)
    pa = radio.attach('10.0.0.1', a, port=port)
    pb = radio.attach('10.0.0.2', b, port=port)
    radio.connect('10.0.0.1', '10.0.0.2')
    return a, b, pa, pb

#------------------------------------------------------------------------------

def test_unicast_delivery_after_transmission_time(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    pa.sendUnicast(b'x' * 125, '10.0.0.2', 5000)
    scheduler.runUntil(1.0)
    [(t, payload, sender)] = b.messages
    assert t == pytest.approx(125 * 8 / radio.DATA_RATE)
    assert payload == b'x' * 125
    assert sender == '10.0.0.1'
    assert a.messages == []
    assert radio.stats['packetDelivered'] == 1

#------------------------------------------------------------------------------

def test_unicast_to_non_neighbor_is_unreachable(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    radio.attach('10.0.0.3', Recorder(scheduler))
    pa.sendUnicast(b'hello', '10.0.0.3', 5000)
    scheduler.runUntil(1.0)
    assert radio.stats['packetUnreachable'] == 1
    assert radio.stats['packetSent'] == 0

#------------------------------------------------------------------------------

def test_multicast_reaches_group_members_in_range(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    c, d = Recorder(scheduler), Recorder(scheduler)
    pc = radio.attach('10.0.0.3', c)
    radio.attach('10.0.0.4', d)
    pe = radio.attach('10.0.0.5', Recorder(scheduler))
    radio.connect('10.0.0.1', '10.0.0.3')
    radio.connect('10.0.0.1', '10.0.0.4')
    for p in (pb, pc, pe):
        p.joinGroup('224.0.0.1')

    pa.sendMulticast(b'adv', '224.0.0.1', 5000)
    scheduler.runUntil(1.0)
    assert len(b.messages) == 1
    assert len(c.messages) == 1
    # in range but not in the group
    assert d.messages == []
    assert radio.stats['multicastSent'] == 1

#------------------------------------------------------------------------------

def test_wrong_port_is_not_delivered(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    pa.sendUnicast(b'hello', '10.0.0.2', 6000)
    scheduler.runUntil(1.0)
    assert b.messages == []
    assert radio.stats['packetWrongPort'] == 1

#------------------------------------------------------------------------------

def test_packet_loss(scheduler):
    radio = RadioNetwork(scheduler, jitterType='off', plrType='uniform',
                         PLR=1.0, seed=1)
    a, b, pa, pb = _pair(radio, scheduler)
    for _ in range(5):
        pa.sendUnicast(b'hello', '10.0.0.2', 5000)
    scheduler.runUntil(1.0)
    assert b.messages == []
    assert radio.stats['packetDropPLR'] == 5

#------------------------------------------------------------------------------

def test_jitter_is_bounded(scheduler):
    radio = RadioNetwork(scheduler, jitterType='uniform', MAX_JITTER=0.01,
                         seed=3)
    a, b, pa, pb = _pair(radio, scheduler)
    for _ in range(20):
        pa.sendUnicast(b'x', '10.0.0.2', 5000)
    scheduler.runUntil(1.0)
    base = 8 / radio.DATA_RATE
    for t, _, _ in b.messages:
        assert base <= t <= base + 0.01

#------------------------------------------------------------------------------

def test_receiver_failure_is_contained(radio, scheduler, caplog):
    radio.attach('10.0.0.1', Recorder(scheduler))
    radio.attach('10.0.0.2', Exploding())
    radio.connect('10.0.0.1', '10.0.0.2')
    radio.transmit(b'hello', '10.0.0.1', '10.0.0.2', 5000)
    scheduler.runUntil(1.0)
    assert radio.stats['packetFailedDel'] == 1
    assert 'MESSAGE DELIVERY FAILED' in caplog.text

#------------------------------------------------------------------------------

def test_detached_node_misses_frames_in_flight(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    pa.sendUnicast(b'hello', '10.0.0.2', 5000)
    radio.detach('10.0.0.2')
    scheduler.runUntil(1.0)
    assert b.messages == []
    radio.reattach(pb)
    pa.sendUnicast(b'again', '10.0.0.2', 5000)
    scheduler.runUntil(2.0)
    assert [m for _, m, _ in b.messages] == [b'again']

#------------------------------------------------------------------------------

def test_auto_link_by_range(radio, scheduler):
    radio.attach('a', Recorder(), position=(0, 0))
    radio.attach('b', Recorder(), position=(50, 0))
    radio.attach('c', Recorder(), position=(120, 0))
    assert radio.autoLink(txRange=80.0) == 2
    assert radio.neighborsOf('b') == ['a', 'c']
    assert radio.neighborsOf('a') == ['b']

#------------------------------------------------------------------------------

def test_duplicate_address_rejected(radio):
    radio.attach('a', Recorder())
    with pytest.raises(ValueError):
        radio.attach('a', Recorder())

#------------------------------------------------------------------------------

def test_reports(radio, scheduler):
    a, b, pa, pb = _pair(radio, scheduler)
    pa.sendUnicast(b'hello', '10.0.0.2', 5000)
    scheduler.runUntil(1.0)
    report = radio.getStatsReport()
    assert 'Delivered' in report
    assert '100.0%' in report
    assert 'Nodes:' in str(radio)
