"""DataPlaneRouter receive pipeline and origination."""

import pytest
from gccluster.messages import DataUnit
from gccluster.routing import DataPlaneRouter, DropReason, Outcome
from gccluster.state import NO_CLUSTER, NO_NEXT_HOP, Role, UNASSIGNED

CH = Role.CLUSTER_HEAD
MB = Role.MEMBER
GW = Role.GATEWAY
UD = Role.UNDECIDED

###############################################################################

@pytest.fixture
def clusterHead(makeState, makeTable):
    """Cluster Head 1 with member 5, gateways 3 and 4, member 6."""
    state = makeState(1, 0, CH, 1)
    table = makeTable(1,
                      (3, 1, GW, 1),
                      (4, 2, GW, 1),
                      (5, 3, MB, 1),
                      (6, 4, MB, 1))
    return DataPlaneRouter(state, table)

#------------------------------------------------------------------------------

@pytest.fixture
def gateway(makeState, makeTable):
    """Gateway 4 of cluster 1, hearing Cluster Head 8 and Gateway 9 of 8."""
    state = makeState(4, 2, GW, 1)
    table = makeTable(4,
                      (1, 0, CH, 1),
                      (5, 1, MB, 1),
                      (8, 0, CH, 8),
                      (9, 1, GW, 8),
                      (10, 3, MB, 8))
    return DataPlaneRouter(state, table)

###############################################################################
# Origination
###############################################################################

def test_member_uplinks_to_own_cluster_head(makeState, makeTable):
    router = DataPlaneRouter(makeState(5, 1, MB, 1),
                             makeTable(5, (1, 0, CH, 1), (6, 2, MB, 1)))
    d = router.originate(DataUnit(5, 0, 16, 6))
    assert d.outcome == Outcome.FORWARDED
    [tx] = d.transmissions
    # never sent directly to the neighbor destination
    assert tx.targetId == 1
    assert tx.unit.nextHopId == 1
    assert tx.unit.ttl == 16
    assert not tx.delayed and not tx.multicast
    assert (5, 0) in router.dedup

#------------------------------------------------------------------------------

def test_orphaned_member_drops(makeState, makeTable, caplog):
    router = DataPlaneRouter(makeState(5, 1, MB, 1),
                             makeTable(5, (6, 2, MB, 1)))
    d = router.originate(DataUnit(5, 0, 16, 6))
    assert d.outcome == Outcome.DROPPED
    assert d.reason == DropReason.ORPHANED
    assert not d.transmissions
    assert 'orphaned' in caplog.text

#------------------------------------------------------------------------------

def test_undecided_cannot_originate(makeState, makeTable):
    router = DataPlaneRouter(makeState(5, UNASSIGNED, UD),
                             makeTable(5, (6, 2, MB, 1)))
    d = router.originate(DataUnit(5, 0, 16, 6))
    assert d.reason == DropReason.ORPHANED

#------------------------------------------------------------------------------

def test_origination_to_self_is_delivered(makeState, makeTable):
    router = DataPlaneRouter(makeState(5, 1, MB, 1), makeTable(5))
    assert router.originate(DataUnit(5, 0, 16, 5)).outcome == \
        Outcome.DELIVERED

#------------------------------------------------------------------------------

def test_cluster_head_originates_to_neighbor_directly(clusterHead):
    d = clusterHead.originate(DataUnit(1, 0, 16, 6))
    [tx] = d.transmissions
    assert tx.targetId == 6
    assert tx.unit.ttl == 16
    assert not tx.delayed

###############################################################################
# Cluster Head relay
###############################################################################

def test_cluster_head_floods_unknown_destination(clusterHead):
    # member 5 uplinked a unit for a node outside the cluster
    unit = DataUnit(5, 0, 16, 99).addressedTo(1)
    d = clusterHead.receive(unit, 5)
    assert d.outcome == Outcome.FORWARDED
    assert [tx.targetId for tx in d.transmissions] == [3, 4]
    for tx in d.transmissions:
        assert tx.delayed and tx.multicast
        assert tx.unit.nextHopId == tx.targetId
        assert tx.unit.ttl == 15

#------------------------------------------------------------------------------

def test_cluster_head_without_gateways_has_no_route(makeState, makeTable):
    router = DataPlaneRouter(makeState(1, 0, CH, 1),
                             makeTable(1, (5, 1, MB, 1)))
    d = router.receive(DataUnit(5, 0, 16, 99, 1), 5)
    assert d.reason == DropReason.NO_ROUTE

#------------------------------------------------------------------------------

def test_cluster_head_learns_and_uses_route(clusterHead):
    clusterHead.receive(DataUnit(42, 0, 10, 5, 1), 3)
    assert clusterHead.routeCache.peek(42) == 3

    d = clusterHead.originate(DataUnit(1, 0, 16, 42))
    [tx] = d.transmissions
    assert tx.targetId == 3
    assert tx.delayed
    assert not tx.multicast

#------------------------------------------------------------------------------

def test_route_learned_from_overheard_copy(clusterHead):
    d = clusterHead.receive(DataUnit(42, 0, 10, 5, nextHopId=77), 4)
    assert d.reason == DropReason.ADDRESSING
    assert clusterHead.routeCache.peek(42) == 4

#------------------------------------------------------------------------------

def test_no_route_learned_from_member(clusterHead):
    clusterHead.receive(DataUnit(42, 0, 10, 6, 1), 5)
    assert clusterHead.routeCache.peek(42) is None

#------------------------------------------------------------------------------

def test_stale_route_falls_back_to_flood(clusterHead, caplog):
    clusterHead.routeCache.learn(42, 3)
    rec = clusterHead.neighbors.get(3)
    rec.role = MB
    d = clusterHead.originate(DataUnit(1, 0, 16, 42))
    assert 42 not in clusterHead.routeCache
    assert [tx.targetId for tx in d.transmissions] == [4]
    assert d.transmissions[0].multicast
    assert 'evicted stale route' in caplog.text

###############################################################################
# Receive pipeline
###############################################################################

def test_addressing_miss_is_dropped(clusterHead):
    d = clusterHead.receive(DataUnit(5, 0, 16, 99, nextHopId=3), 5)
    assert d.reason == DropReason.ADDRESSING
    # an addressing miss is not recorded as seen
    assert (5, 0) not in clusterHead.dedup

#------------------------------------------------------------------------------

def test_duplicate_is_forwarded_once(clusterHead):
    unit = DataUnit(7, 5, 8, 99, NO_NEXT_HOP)
    first = clusterHead.receive(unit, 3)
    second = clusterHead.receive(unit, 4)
    assert first.outcome == Outcome.FORWARDED
    assert second.outcome == Outcome.DROPPED
    assert second.reason == DropReason.DUPLICATE

#------------------------------------------------------------------------------

def test_member_never_relays(makeState, makeTable):
    router = DataPlaneRouter(makeState(5, 1, MB, 1),
                             makeTable(5, (1, 0, CH, 1)))
    d = router.receive(DataUnit(7, 0, 8, 99), 1)
    assert d.reason == DropReason.MEMBER_STOP
    d = router.receive(DataUnit(7, 1, 8, 5, 5), 1)
    assert d.outcome == Outcome.DELIVERED

#------------------------------------------------------------------------------

def test_undecided_never_relays(makeState, makeTable):
    router = DataPlaneRouter(makeState(5, UNASSIGNED, UD), makeTable(5))
    assert router.receive(DataUnit(7, 0, 8, 99), None).reason == \
        DropReason.MEMBER_STOP

#------------------------------------------------------------------------------

def test_ttl_zero_is_never_forwarded(clusterHead):
    d = clusterHead.receive(DataUnit(5, 0, 0, 99, 1), 5)
    assert d.reason == DropReason.TTL_EXPIRED
    assert not d.transmissions

#------------------------------------------------------------------------------

def test_ttl_zero_still_delivered_at_destination(clusterHead):
    d = clusterHead.receive(DataUnit(5, 0, 0, 1, 1), 5)
    assert d.outcome == Outcome.DELIVERED

#------------------------------------------------------------------------------

@pytest.mark.parametrize('ttl', [1, 2, 16])
def test_forwarded_ttl_is_one_less(clusterHead, ttl):
    d = clusterHead.receive(DataUnit(5, ttl, ttl, 6, 1), 5)
    [tx] = d.transmissions
    assert tx.targetId == 6
    assert tx.unit.ttl == ttl - 1
    assert not tx.delayed

###############################################################################
# Gateway relay
###############################################################################

def test_gateway_bridges_outbound_to_foreign_backbone(gateway):
    d = gateway.receive(DataUnit(5, 0, 10, 99, 4), 1)
    assert d.outcome == Outcome.FORWARDED
    assert [tx.targetId for tx in d.transmissions] == [8, 9]
    for tx in d.transmissions:
        assert tx.delayed and tx.multicast
        assert tx.unit.ttl == 9

#------------------------------------------------------------------------------

def test_gateway_relays_inbound_to_own_cluster_head(gateway):
    d = gateway.receive(DataUnit(20, 0, 10, 5, 4), 9)
    [tx] = d.transmissions
    assert tx.targetId == 1
    assert not tx.delayed and not tx.multicast
    assert tx.unit.ttl == 9

#------------------------------------------------------------------------------

def test_gateway_without_foreign_backbone(makeState, makeTable):
    router = DataPlaneRouter(makeState(4, 2, GW, 1),
                             makeTable(4, (1, 0, CH, 1), (10, 3, MB, 8)))
    d = router.receive(DataUnit(5, 0, 10, 99, 4), 1)
    assert d.reason == DropReason.NO_ROUTE

#------------------------------------------------------------------------------

def test_orphaned_gateway_drops_inbound(makeState, makeTable):
    router = DataPlaneRouter(makeState(4, 2, GW, 1),
                             makeTable(4, (8, 0, CH, 8)))
    d = router.receive(DataUnit(20, 0, 10, 5, 4), 8)
    assert d.reason == DropReason.ORPHANED

#------------------------------------------------------------------------------

def test_gateway_readmits_own_unit_from_own_cluster_head(gateway):
    up = gateway.originate(DataUnit(4, 5, 16, 99))
    assert up.transmissions[0].targetId == 1

    # the Cluster Head floods it back to every Gateway, including this one
    back = DataUnit(4, 5, 15, 99, nextHopId=4)
    d = gateway.receive(back, 1)
    assert d.outcome == Outcome.FORWARDED
    assert [tx.targetId for tx in d.transmissions] == [8, 9]

#------------------------------------------------------------------------------

def test_own_unit_from_elsewhere_is_duplicate(gateway):
    gateway.originate(DataUnit(4, 5, 16, 99))
    d = gateway.receive(DataUnit(4, 5, 12, 99, nextHopId=4), 9)
    assert d.reason == DropReason.DUPLICATE

#------------------------------------------------------------------------------

def test_foreign_duplicate_from_cluster_head_is_dropped(gateway):
    unit = DataUnit(7, 5, 10, 99, 4)
    assert gateway.receive(unit, 1).outcome == Outcome.FORWARDED
    assert gateway.receive(unit, 1).reason == DropReason.DUPLICATE
