"""
Simulation driver for graph-coloring clustering scenarios.

Provides the Simulator class, which deploys ClusterNode instances on a shared
RadioNetwork, runs the virtual clock, injects node failures and recoveries,
and summarizes and plots the resulting cluster structure.


Classes
-------
Simulator
    Main simulation orchestrator.


Notes
-----
- Each node gets an address from addressFor(nodeId) and its own random
  generator seeded from the simulator's generator, so a run is reproducible
  from a single seed.
- Output files (logs, plots) go to outputs/<script_name>/<name>_<timestamp>/,
  created the first time a file is needed.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
from numpy.typing import NDArray
import os
import inspect
import time
import datetime
import numpy as np
from gccluster.config import ClusterConfig
from gccluster.network import EventScheduler, RadioNetwork
from gccluster.node import ClusterNode
from gccluster.state import Role, UNASSIGNED
from gccluster import network as net
from gccluster import plotClusters as pltC
from gccluster import logger

#-----------------------------------------------------------------------------#

# Type Aliases
NPFltArr = NDArray[np.float64]

###############################################################################

class Simulator:
    """
    Main simulation coordinator for clustering scenarios.


    Parameters
    ----------
    name : str, default='Simulation'
        Simulation title. Used for output directory and file naming.
    config : ClusterConfig, optional
        Options shared by every node. Defaults to ClusterConfig().
    seed : int, optional
        Seed of the simulator random generator. Node and network generators
        are seeded from it.
    network : RadioNetwork, optional
        Pre-built network. Its scheduler becomes the simulator clock.
    logging : str, default='all'
        Main logger configuration. Options: 'all', 'none', 'noout', 'nofile',
        'quiet', 'onlyfile', 'onlyconsole'.
    netLogging : str, default='all'
        Network logger configuration. Same options as logging.
    **kwargs : dict
        RadioNetwork options (DATA_RATE, MAX_JITTER, PLR, TX_RANGE,
        jitterType, plrType) used when network is None.


    Attributes
    ----------
    **Simulation:**

        config : ClusterConfig
            Shared node options.
        scheduler : EventScheduler
            Virtual clock.
        network : RadioNetwork
            Shared radio medium.
        rng : numpy.random.Generator
            Simulator random generator.

    **Nodes:**

        nodes : dict
            Node id -> ClusterNode.
        positions : dict
            Node id -> (x, y) for nodes deployed with a position.
        dead : set of int
            Ids of nodes currently killed.

    **Data Collection:**

        historyTime : ndarray, shape (T,)
            Sample times recorded by run(sampleInterval=...).
        historyColor : ndarray, shape (T, n)
            Node colors at each sample time, columns in nodeIds order.

    **Output and Logging:**

        name : str
            Simulation name.
        outDir : str (read-only)
            Output directory path, created on first access.
        logFile : str
            Path to main log file.
        netFile : str
            Path to network log file.
        log : logging.Logger
            Main simulation logger instance.


    Examples
    --------
    >>> sim = Simulator('Line', seed=3, logging='none', netLogging='none')
    >>> sim.deployLinks([(1, 2), (2, 3)])
    >>> sim.run(30.0)
    >>> sim.summary()['properColoring']
    True
    """

    ## Constructor ===========================================================#
    def __init__(self,
                 name:str = 'Simulation',
                 config:Optional[ClusterConfig] = None,
                 seed:Optional[int] = None,
                 network:Optional[RadioNetwork] = None,
                 logging:str = 'all',
                 netLogging:str = 'all',
                 **kwargs,
                 )->None:

        ## Time Stamp
        init_time = datetime.datetime.now()
        self.initTime = init_time.strftime("%y%m%d-%H%M%S")

        ## Simulation
        self.name = name
        self.config = ClusterConfig() if config is None else config
        self.config.validate()
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        ## Network
        if (network is None):
            kwargs.setdefault('seed', int(self.rng.integers(2**32)))
            network = RadioNetwork(EventScheduler(), **kwargs)
        self.network = network
        self.scheduler = network.scheduler

        ## Nodes
        self.nodes:Dict[int, ClusterNode] = {}
        self.positions:Dict[int, NPFltArr] = {}
        self.dead = set()

        ## Data
        self.historyTime = np.zeros(0)
        self.historyColor = np.zeros((0, 0), dtype=int)
        self._samples:List[Tuple[float, List[int]]] = []

        ## Logging
        self.log = None
        self.logging = logging
        self.netLogging = netLogging

    ## Properties ============================================================#
    @property
    def nodeIds(self)->List[int]:
        """Sorted ids of every deployed node."""
        return sorted(self.nodes)

    #--------------------------------------------------------------------------
    @property
    def alive(self)->List[int]:
        """Sorted ids of nodes not currently killed."""
        return [nid for nid in self.nodeIds if nid not in self.dead]

    #--------------------------------------------------------------------------
    @property
    def outDir(self)->str:
        """Get output directory path, creating it on first access."""
        if ('_outDir' not in self.__dict__):
            self._outDir = self._makeSaveDir(f"{self.name}_{self.initTime}")
        return self._outDir

    #--------------------------------------------------------------------------
    @property
    def logFile(self)->str:
        """Get main log file path."""
        if ('_logFile' not in self.__dict__):
            self._logFile = os.path.join(self.outDir, f"{self.name}.log")
        return self._logFile

    #--------------------------------------------------------------------------
    @property
    def netFile(self)->str:
        """Get network log file path."""
        if ('_netFile' not in self.__dict__):
            self._netFile = os.path.join(self.outDir, f"{self.name}_net.log")
        return self._netFile

    #--------------------------------------------------------------------------
    @property
    def logging(self)->str:
        """Get main logger configuration."""
        return self._logging

    @logging.setter
    def logging(self, logging:str)->None:
        """
        Set main logger configuration.

        Parameters
        ----------
        logging : str
            'all', 'none', 'noout', 'nofile', 'quiet', 'onlyfile',
            'onlyconsole'.
        """

        def setNoneLog()->None:
            """Set the main logger to no logging"""
            self.log = logger.noneLog(logger.MAIN_LOG)

        def setNoConsoleLog()->None:
            """Set the main logger to no console logging"""
            if (logger.consoleHandler is not None):
                logger.deepRemoveHandler(logger.consoleHandler)
            if (logger.log is not None):
                logger.removeLog(logger.MAIN_LOG)
            self.log = logger.setupMain(fileName=self.logFile, outFormat=None)

        def setNoFileLog()->None:
            """Set the main logger to no file logging"""
            if (logger.fileHandler is not None):
                logger.deepRemoveHandler(logger.fileHandler)
            if (logger.log is not None):
                logger.removeLog(logger.MAIN_LOG)
            self.log = logger.setupMain(fileFormat=None)

        def setDefaultLog()->None:
            """Set the main logger to default logging to console and file"""
            if (logger.log is not None):
                logger.removeLog(logger.MAIN_LOG)
            self.log = logger.setupMain(fileName=self.logFile)

        logSettings = {
            # No logging
            'NONE': setNoneLog,
            'OFF': setNoneLog,
            # No console logging
            'NOOUT': setNoConsoleLog,
            'QUIET': setNoConsoleLog,
            'NOCONSOLE': setNoConsoleLog,
            'ONLYFILE': setNoConsoleLog,
            # No file logging
            'NOFILE': setNoFileLog,
            'ONLYOUT': setNoFileLog,
            'ONLYCONSOLE': setNoFileLog,
        }

        configLog = logSettings.get(logging.upper(), setDefaultLog)
        configLog()
        self._logging = logging

    #--------------------------------------------------------------------------
    @property
    def netLogging(self)->str:
        """Get network logger configuration."""
        return self._netLogging

    @netLogging.setter
    def netLogging(self, netLogging:str)->None:
        """
        Set network logger configuration.

        Parameters
        ----------
        netLogging : str
            'all', 'none', 'noout', 'nofile', 'quiet', 'onlyfile',
            'onlyconsole'.
        """

        if (net.log is not None):
            logger.removeHandlers(net.log.name)

        def setNoneNet()->None:
            """Set the network logger to no logging"""
            net.log = logger.noneLog('net')

        def setNoConsoleNet()->None:
            """Set the network logger to its own file only"""
            net.log = logger.setupNet(fileName=self.netFile, out=False)

        def setNoFileNet()->None:
            """Set the network logger to no unique file logging"""
            net.log = logger.setupNet(file=False)

        def setDefaultNet()->None:
            """Set the network logger to default logging"""
            net.log = logger.setupNet(fileName=self.netFile)

        netSettings = {
            'NONE': setNoneNet,
            'OFF': setNoneNet,
            'NOOUT': setNoConsoleNet,
            'QUIET': setNoConsoleNet,
            'NOCONSOLE': setNoConsoleNet,
            'ONLYFILE': setNoConsoleNet,
            'NOFILE': setNoFileNet,
            'ONLYOUT': setNoFileNet,
            'ONLYCONSOLE': setNoFileNet,
        }

        configNetLog = netSettings.get(netLogging.upper(), setDefaultNet)
        configNetLog()
        self._netLogging = netLogging

    ## Special Methods =======================================================#
    def __str__(self)->str:
        """Return user-friendly string representation of the simulation."""
        line = '*' * 64
        cfg = self.config
        return "\n".join([
            line,
            f"{self.__class__.__name__}: {self.name}",
            line,
            f"Nodes: {len(self.nodes)} ({len(self.dead)} down)",
            f"Hello interval: {cfg.helloInterval} s "
            f"(+{cfg.helloJitter} s jitter)",
            f"Neighbor timeout: {cfg.neighborTimeout} s",
            f"Maintenance interval: {cfg.maintenanceInterval} s",
            f"Data interval: "
            f"{cfg.dataInterval if cfg.dataInterval > 0 else 'Disabled'}",
            f"Seed: {self.seed}",
            f"\n{self.network}",
            line,
        ])

    ## Methods ===============================================================#
    @staticmethod
    def addressFor(nodeId:int)->str:
        """Transport address of a node id."""
        return f"10.0.{nodeId // 256}.{nodeId % 256}"

    #--------------------------------------------------------------------------
    def addNode(self,
                nodeId:int,
                position:Optional[Sequence[float]] = None,
                config:Optional[ClusterConfig] = None,
                )->ClusterNode:
        """
        Create a ClusterNode and attach it to the network.


        Parameters
        ----------
        nodeId : int
            Unique node id.
        position : sequence of float, optional
            (x, y) placement for range-based linking and plotting.
        config : ClusterConfig, optional
            Per-node options (default: the simulator config).


        Returns
        -------
        node : ClusterNode
        """

        if (nodeId in self.nodes):
            raise ValueError(f"node {nodeId} already deployed")
        cfg = self.config if config is None else config
        node = ClusterNode(nodeId, cfg, self.scheduler,
                           seed=int(self.rng.integers(2**32)))
        node.transport = self.network.attach(self.addressFor(nodeId), node,
                                             port=cfg.localPort,
                                             position=position)
        self.nodes[nodeId] = node
        if (position is not None):
            self.positions[nodeId] = np.asarray(position, dtype=float)
        return node

    #--------------------------------------------------------------------------
    def deployRandom(self,
                     n:int,
                     area:float = 300.0,
                     txRange:Optional[float] = None,
                     firstId:int = 1,
                     )->List[ClusterNode]:
        """
        Deploy n nodes at uniform random positions in a square area and link
        every pair within radio range.


        Parameters
        ----------
        n : int
            Number of nodes.
        area : float, default=300.0
            Side of the square deployment area (m).
        txRange : float, optional
            Radio range (default: network TX_RANGE).
        firstId : int, default=1
            Id of the first node; the rest are consecutive.


        Returns
        -------
        nodes : list of ClusterNode
        """

        positions = self.rng.uniform(0.0, area, size=(n, 2))
        nodes = [self.addNode(firstId + i, positions[i]) for i in range(n)]
        self.network.autoLink(txRange)
        self.log.info('Deployed %d nodes in %.0f x %.0f m', n, area, area)
        return nodes

    #--------------------------------------------------------------------------
    def deployLinks(self,
                    links:Sequence[Tuple[int, int]],
                    positions:Optional[Dict[int, Sequence[float]]] = None,
                    )->List[ClusterNode]:
        """
        Deploy the nodes named in an explicit link list and connect them.


        Parameters
        ----------
        links : sequence of (int, int)
            Undirected radio links.
        positions : dict, optional
            Node id -> (x, y) for plotting.


        Returns
        -------
        nodes : list of ClusterNode
            Newly deployed nodes, by id.
        """

        positions = positions or {}
        ids = sorted({nid for link in links for nid in link})
        nodes = [self.addNode(nid, positions.get(nid)) for nid in ids
                 if nid not in self.nodes]
        for a, b in links:
            self.network.connect(self.addressFor(a), self.addressFor(b))
        self.log.info('Deployed %d nodes with %d links', len(nodes),
                      len(links))
        return nodes

    #--------------------------------------------------------------------------
    def links(self)->List[Tuple[int, int]]:
        """Current radio links between deployed nodes as (a, b), a < b."""
        byAddr = {self.addressFor(nid): nid for nid in self.nodes}
        out = set()
        for addr, peers in self.network.links.items():
            for peer in peers:
                if (addr in byAddr and peer in byAddr):
                    a, b = byAddr[addr], byAddr[peer]
                    out.add((min(a, b), max(a, b)))
        return sorted(out)

    #--------------------------------------------------------------------------
    def run(self, until:float, sampleInterval:Optional[float] = None)->None:
        """
        Start every idle node and advance the virtual clock to until.


        Parameters
        ----------
        until : float
            Virtual time to stop at (s).
        sampleInterval : float, optional
            If given, node colors are recorded every sampleInterval seconds
            into historyTime / historyColor.
        """

        self._startNodes()
        self.log.info(f"{self}")
        start = time.time()

        if (sampleInterval is None or sampleInterval <= 0):
            self.scheduler.runUntil(until)
        else:
            t = self.scheduler.now()
            self._sample()
            while (t < until):
                t = min(t + sampleInterval, until)
                self.scheduler.runUntil(t)
                self._sample()
            self._buildHistory()

        endReal = round(time.time() - start)
        line = '*' * 64
        self.log.info(line)
        self.log.info('Run Time: (Real) %s, (Simulated) %s',
                      datetime.timedelta(seconds=endReal),
                      datetime.timedelta(seconds=round(self.scheduler.now())))
        self.log.info('Events fired: %d', self.scheduler.eventsFired)
        self.logNetStats()
        self.log.info(line)

    #--------------------------------------------------------------------------
    def onTimer(self, kind:str, nodeId:int)->None:
        """Scheduler callback for deferred kill / revive events."""
        actions = {
            'kill': self._kill,
            'revive': self._revive,
        }
        actions[kind](nodeId)

    #--------------------------------------------------------------------------
    def killNode(self, nodeId:int, at:Optional[float] = None)->None:
        """
        Stop a node and take it off the air, now or at virtual time at.

        A killed node stops advertising; its neighbors evict it after
        neighborTimeout.
        """

        if (nodeId not in self.nodes):
            raise KeyError(f"unknown node {nodeId}")
        if (at is None):
            self._kill(nodeId)
        else:
            self.scheduler.scheduleAt(at, self, 'kill', nodeId)

    #--------------------------------------------------------------------------
    def reviveNode(self, nodeId:int, at:Optional[float] = None)->None:
        """Restart a killed node with fresh protocol state."""

        if (nodeId not in self.nodes):
            raise KeyError(f"unknown node {nodeId}")
        if (at is None):
            self._revive(nodeId)
        else:
            self.scheduler.scheduleAt(at, self, 'revive', nodeId)

    #--------------------------------------------------------------------------
    def isProperColoring(self)->bool:
        """
        True if every live node is colored and no two linked live nodes
        share a color.
        """

        alive = set(self.alive)
        if any(self.nodes[nid].color == UNASSIGNED for nid in alive):
            return False
        for a, b in self.links():
            if (a in alive and b in alive and
                    self.nodes[a].color == self.nodes[b].color):
                return False
        return True

    #--------------------------------------------------------------------------
    def summary(self)->Dict[str, Any]:
        """
        Return the cluster structure and traffic totals of the live nodes.


        Returns
        -------
        summary : dict
            time : float
                Current virtual time.
            nodes : dict
                Node id -> {'color', 'role', 'clusterId', 'neighbors'}.
            clusterHeads : list of int
                Ids of live Cluster Heads.
            undecided : list of int
                Ids of live Undecided nodes.
            properColoring : bool
                Result of isProperColoring().
            originated, delivered : int
                Totals over every node.
        """

        nodes = {}
        for nid in self.alive:
            node = self.nodes[nid]
            nodes[nid] = {
                'color': node.color,
                'role': node.role,
                'clusterId': node.clusterId,
                'neighbors': [rec.neighborId for rec in node.neighbors],
            }
        return {
            'time': self.scheduler.now(),
            'nodes': nodes,
            'clusterHeads': [nid for nid, n in nodes.items()
                             if n['role'] == Role.CLUSTER_HEAD],
            'undecided': [nid for nid, n in nodes.items()
                          if n['role'] == Role.UNDECIDED],
            'properColoring': self.isProperColoring(),
            'originated': sum(n.stats['originated']
                              for n in self.nodes.values()),
            'delivered': sum(n.stats['delivered']
                             for n in self.nodes.values()),
        }

    #--------------------------------------------------------------------------
    def logNetStats(self)->None:
        """Log radio network statistics and per-role node counts."""

        self.log.info(self.network.getStatsReport())
        counts = {r.name: 0 for r in Role}
        for nid in self.alive:
            counts[self.nodes[nid].role.name] += 1
        self.log.info('Roles: %s', ", ".join(f"{k}={v}"
                                             for k, v in counts.items()))
        self.log.info('Proper coloring: %s', self.isProperColoring())

    #--------------------------------------------------------------------------
    def stop(self)->None:
        """Stop every live node (each logs its teardown report)."""
        for nid in self.alive:
            self.nodes[nid].stop()

    #--------------------------------------------------------------------------
    def plotTopology(self,
                     fileName:Optional[str] = None,
                     figNo:int = 1,
                     save:bool = False,
                     )->Any:
        """
        Plot the current cluster structure of the live nodes.

        Wrapper for plotClusters.plotTopology(). Nodes without a position are
        placed on a circle. With save=True and no fileName the plot goes to
        outDir.
        """

        alive = self.alive
        positions = dict(self.positions)
        missing = [nid for nid in alive if nid not in positions]
        for k, nid in enumerate(missing):
            angle = 2 * np.pi * k / max(len(missing), 1)
            positions[nid] = np.array([np.cos(angle), np.sin(angle)]) * 100.0
        if (save and fileName is None):
            fileName = os.path.join(self.outDir, f"{self.name}_topology.png")
        return pltC.plotTopology(
            positions,
            [l for l in self.links() if l[0] in alive and l[1] in alive],
            {nid: self.nodes[nid].color for nid in alive},
            {nid: self.nodes[nid].role for nid in alive},
            nodeIds=alive,
            figNo=figNo,
            fileName=fileName,
            title=f"{self.name} at t={self.scheduler.now():.1f} s")

    #--------------------------------------------------------------------------
    def plotColorHistory(self,
                         fileName:Optional[str] = None,
                         figNo:int = 2,
                         )->Any:
        """Wrapper for plotClusters.plotColorHistory() on recorded history."""
        return pltC.plotColorHistory(self.historyTime, self.historyColor,
                                     self.nodeIds, figNo=figNo,
                                     fileName=fileName)

    ## Helper Methods ========================================================#
    def _startNodes(self)->None:
        ids = self.nodeIds
        for nid in ids:
            node = self.nodes[nid]
            if (nid in self.dead or node.running):
                continue
            node.destinationIds = [d for d in ids if d != nid]
            node.start()

    #--------------------------------------------------------------------------
    def _kill(self, nodeId:int)->None:
        node = self.nodes[nodeId]
        node.stop()
        self.network.detach(self.addressFor(nodeId))
        self.dead.add(nodeId)
        self.log.info('Node %03d killed', nodeId)

    #--------------------------------------------------------------------------
    def _revive(self, nodeId:int)->None:
        node = self.nodes[nodeId]
        if (node.running):
            return
        node.reset()
        self.network.reattach(node.transport)
        self.dead.discard(nodeId)
        node.destinationIds = [d for d in self.nodeIds if d != nodeId]
        node.start()
        self.log.info('Node %03d revived', nodeId)

    #--------------------------------------------------------------------------
    def _sample(self)->None:
        self._samples.append((self.scheduler.now(),
                              [self.nodes[nid].color
                               for nid in self.nodeIds]))

    #--------------------------------------------------------------------------
    def _buildHistory(self)->None:
        self.historyTime = np.array([t for t, _ in self._samples])
        self.historyColor = np.array([c for _, c in self._samples],
                                     dtype=int)

    #--------------------------------------------------------------------------
    def _makeSaveDir(self, dirName:str)->str:
        """
        Create and return output directory path for simulation files.


        Parameters
        ----------
        dirName : str
            Directory name for this simulation.


        Returns
        -------
        outDir : str
            Full path to created output directory.


        Notes
        -----
        - Creates directory structure: outputs/<script_name>/<dirName>/ under
          the current working directory.
        - Automatically detects calling script name.
        """

        # Get the user script name
        frame = inspect.currentframe()
        while frame.f_back:
            frame = frame.f_back
        if ('__file__' in frame.f_globals):
            scriptPath = os.path.abspath(frame.f_globals['__file__'])
            scriptName = os.path.splitext(os.path.basename(scriptPath))[0]
        else:
            scriptName = 'REPL'

        outDir = os.path.join(os.getcwd(), 'outputs', scriptName, dirName)
        os.makedirs(outDir, exist_ok=True)
        return outDir
