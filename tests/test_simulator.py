"""End-to-end scenarios through Simulator."""

import numpy as np
import pytest
from gccluster.config import ClusterConfig
from gccluster.simulator import Simulator
from gccluster.state import Role, UNASSIGNED

###############################################################################

def _sim(name='Test', **kwargs):
    kwargs.setdefault('seed', 11)
    return Simulator(name, logging='none', netLogging='none', **kwargs)

HUB = [(1, 2), (1, 3), (1, 4), (2, 3), (3, 4)]

###############################################################################

def test_address_for():
    assert Simulator.addressFor(5) == '10.0.0.5'
    assert Simulator.addressFor(300) == '10.0.1.44'

#------------------------------------------------------------------------------

def test_duplicate_node_rejected():
    sim = _sim()
    sim.addNode(1)
    with pytest.raises(ValueError):
        sim.addNode(1)

#------------------------------------------------------------------------------

def test_uncolored_network_is_not_proper():
    sim = _sim()
    sim.deployLinks([(1, 2)])
    assert sim.links() == [(1, 2)]
    assert not sim.isProperColoring()

###############################################################################

def test_line_of_three():
    sim = _sim('Line')
    sim.deployLinks([(1, 2), (2, 3)])
    sim.run(30.0)
    summary = sim.summary()
    assert summary['properColoring']
    n = summary['nodes']
    assert (n[1]['color'], n[1]['role']) == (0, Role.CLUSTER_HEAD)
    assert n[2]['color'] == 1
    assert n[2]['role'] == Role.GATEWAY
    assert n[2]['clusterId'] == 1
    assert n[3]['role'] == Role.CLUSTER_HEAD
    assert summary['clusterHeads'] == [1, 3]
    assert summary['undecided'] == []
    assert n[2]['neighbors'] == [1, 3]

#------------------------------------------------------------------------------

def test_cluster_head_failure_and_recovery():
    sim = _sim('Failover')
    sim.deployLinks(HUB)
    sim.run(20.0)
    assert sim.nodes[1].color == 0
    assert all(sim.nodes[n].clusterId == 1 for n in (2, 3, 4))

    sim.killNode(1)
    sim.run(60.0)
    summary = sim.summary()
    assert 1 not in summary['nodes']
    assert summary['properColoring']
    assert sim.nodes[2].color == 0
    assert sim.nodes[2].role == Role.CLUSTER_HEAD
    for nid in (2, 3, 4):
        assert 1 not in sim.nodes[nid].neighbors

    sim.reviveNode(1)
    sim.run(120.0)
    assert 1 not in sim.dead
    assert sim.nodes[1].running
    assert sim.nodes[1].color != UNASSIGNED
    assert sim.isProperColoring()

#------------------------------------------------------------------------------

def test_scheduled_kill():
    sim = _sim()
    sim.deployLinks(HUB)
    sim.killNode(3, at=5.0)
    sim.run(10.0)
    assert sim.dead == {3}
    assert not sim.nodes[3].running
    assert 3 not in sim.summary()['nodes']

#------------------------------------------------------------------------------

def test_unknown_node_cannot_be_killed():
    sim = _sim()
    with pytest.raises(KeyError):
        sim.killNode(9)

###############################################################################

def test_traffic_crosses_clusters():
    sim = _sim('Traffic', config=ClusterConfig(dataInterval=1.0))
    sim.deployLinks([(1, 2), (2, 3)])
    sim.run(40.0)
    summary = sim.summary()
    assert summary['originated'] > 0
    assert 0 < summary['delivered'] <= summary['originated']
    # Cluster Head 1 reaches Cluster Head 3 through Gateway 2
    assert any(src == 1 for src, _, _ in sim.nodes[3].deliveries)
    assert sim.nodes[2].stats['sent'] > 0
    assert sim.network.stats['packetDelivered'] > 0

#------------------------------------------------------------------------------

def test_random_deployment_converges():
    sim = _sim('Random', seed=5)
    nodes = sim.deployRandom(15, area=200.0, txRange=90.0)
    assert len(nodes) == 15
    assert set(sim.positions) == set(range(1, 16))
    assert sim.links()
    sim.run(100.0)
    summary = sim.summary()
    assert summary['properColoring']
    for nid, info in summary['nodes'].items():
        peers = info['neighbors']
        if (info['color'] == 0):
            assert all(summary['nodes'][p]['color'] != 0 for p in peers)
        else:
            assert info['role'] in (Role.MEMBER, Role.GATEWAY)

#------------------------------------------------------------------------------

def test_same_seed_same_outcome():
    colors = []
    for _ in range(2):
        sim = _sim(seed=21)
        sim.deployLinks(HUB + [(4, 5), (5, 6)])
        sim.run(25.0)
        colors.append({n: sim.nodes[n].color for n in sim.nodeIds})
    assert colors[0] == colors[1]

###############################################################################

def test_color_history_sampling():
    sim = _sim()
    sim.deployLinks([(1, 2), (2, 3)])
    sim.run(10.0, sampleInterval=1.0)
    assert sim.historyTime.shape == (11,)
    assert sim.historyColor.shape == (11, 3)
    assert np.all(sim.historyColor[0] == UNASSIGNED)
    assert np.all(sim.historyColor[-1] != UNASSIGNED)

#------------------------------------------------------------------------------

def test_stop_and_describe():
    sim = _sim('Describe')
    sim.deployLinks([(1, 2)])
    sim.run(5.0)
    assert 'Describe' in str(sim)
    sim.stop()
    assert not any(n.running for n in sim.nodes.values())
    assert sim.scheduler.pending(sim.nodes[1]) == 0
