"""Cluster plots (Agg backend)."""

import matplotlib.pyplot as plt
import numpy as np
import pytest
from matplotlib.figure import Figure
from gccluster import plotClusters as pltC
from gccluster.simulator import Simulator
from gccluster.state import Role, UNASSIGNED

###############################################################################

@pytest.fixture(autouse=True)
def closeFigures():
    yield
    plt.close('all')

#------------------------------------------------------------------------------

def test_plot_topology(tmp_path):
    positions = {1: (0, 0), 2: (50, 0), 3: (100, 0), 4: (100, 50)}
    links = [(1, 2), (2, 3), (3, 4)]
    colors = {1: 0, 2: 1, 3: 0, 4: UNASSIGNED}
    roles = {1: Role.CLUSTER_HEAD, 2: Role.GATEWAY, 3: Role.CLUSTER_HEAD,
             4: Role.UNDECIDED}
    out = tmp_path / 'topology.png'
    fig = pltC.plotTopology(positions, links, colors, roles,
                            fileName=str(out))
    assert isinstance(fig, Figure)
    assert out.exists()

#------------------------------------------------------------------------------

def test_plot_color_history(tmp_path):
    times = np.arange(5.0)
    colors = np.array([[-1, -1], [0, 0], [0, 1], [0, 1], [0, 1]])
    out = tmp_path / 'history.png'
    fig = pltC.plotColorHistory(times, colors, [1, 2], fileName=str(out))
    assert len(fig.axes) == 2
    assert out.exists()

#------------------------------------------------------------------------------

def test_simulator_plots():
    sim = Simulator('Plot', seed=2, logging='none', netLogging='none')
    sim.deployLinks([(1, 2), (2, 3)])
    sim.run(10.0, sampleInterval=2.0)
    assert isinstance(sim.plotTopology(), Figure)
    assert isinstance(sim.plotColorHistory(), Figure)
