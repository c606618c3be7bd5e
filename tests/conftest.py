"""Shared fixtures for the gccluster test suite."""

import matplotlib
matplotlib.use('Agg')

import pytest
from gccluster import logger
from gccluster.network import EventScheduler, RadioNetwork
from gccluster.state import NO_CLUSTER, NeighborRecord, NodeState, Role
from gccluster.tables import NeighborTable

###############################################################################

@pytest.fixture(autouse=True)
def resetSimTime():
    """Every test starts with the log virtual time at zero."""
    logger.simTime = '0.000'
    yield
    logger.simTime = '0.000'

###############################################################################

@pytest.fixture
def scheduler():
    return EventScheduler()

###############################################################################

@pytest.fixture
def radio(scheduler):
    """Deterministic, lossless radio network."""
    return RadioNetwork(scheduler, jitterType='off', plrType='off', seed=0)

###############################################################################

@pytest.fixture
def makeTable():
    """
    Build a NeighborTable from (id, color, role, clusterId) tuples.

    lastHeard defaults to 0.0 and the address to '10.0.0.<id>'.
    """

    def _make(ownerId, *entries, lastHeard=0.0):
        table = NeighborTable(ownerId)
        for entry in entries:
            nid, color, role, clusterId = entry
            table.upsert(NeighborRecord(nid, f'10.0.0.{nid}', color, role,
                                        clusterId, lastHeard))
        return table

    return _make

###############################################################################

@pytest.fixture
def makeState():
    def _make(nodeId, color, role, clusterId=NO_CLUSTER):
        return NodeState(nodeId, color=color, role=role, clusterId=clusterId)
    return _make
