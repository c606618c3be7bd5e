"""
gccluster: Self-Healing Graph-Coloring Clustering for Ad-Hoc Networks

A discrete-event simulation of a distributed clustering protocol in which
every node colors itself greedily from its 1-hop view, color-0 nodes become
Cluster Heads, and Cluster Heads and Gateways form a backbone that routes
application traffic between clusters.

Modules
-------
state : Roles, timer kinds, node and neighbor records
tables : Neighbor table, route cache and duplicate filter
coloring : Greedy coloring and role resolution
routing : Data-plane routing decisions
messages : Wire messages and binary codec
config : Node options and validation
network : Event scheduler and radio transport
node : Cluster node actor
simulator : Main simulation coordination
plotClusters : Visualization and plotting utilities
logger : Logging configuration and utilities

Examples
--------
### Three nodes in a line:

>>> import gccluster as gc
>>>
>>> sim = gc.Simulator(name="Line", seed=1)
>>> sim.deployLinks([(1, 2), (2, 3)])
>>> sim.run(30.0)
>>> sim.summary()['properColoring']
True

### Random deployment with traffic and a Cluster Head failure:

>>> cfg = gc.ClusterConfig(dataInterval=2.0, dataJitter=0.5)
>>> sim = gc.Simulator(name="Random", config=cfg, seed=7)
>>> sim.deployRandom(20, area=300.0, txRange=100.0)
>>> sim.killNode(1, at=40.0)
>>> sim.run(120.0, sampleInterval=1.0)
>>> sim.plotTopology(save=True)
"""

# Core modules - import for direct access
from . import coloring
from . import config
from . import logger
from . import messages
from . import network
from . import node
from . import plotClusters
from . import routing
from . import simulator
from . import state
from . import tables

# Classes and functions for convenience
from .config import ClusterConfig, ConfigError
from .messages import MessageError
from .network import EventScheduler, RadioNetwork
from .node import ClusterNode
from .simulator import Simulator
from .state import Role

# Version info
__version__ = "0.1.0"

# Define what gets imported with "from gccluster import *"
__all__ = [
    # Modules
    'coloring',
    'config',
    'logger',
    'messages',
    'network',
    'node',
    'plotClusters',
    'routing',
    'simulator',
    'state',
    'tables',
    # Main classes
    'ClusterConfig',
    'ClusterNode',
    'ConfigError',
    'EventScheduler',
    'MessageError',
    'RadioNetwork',
    'Role',
    'Simulator',
]
