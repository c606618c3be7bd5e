"""
Node configuration options and startup validation.

A ClusterConfig is built from defaults overridden by keyword arguments and is
validated before any node uses it. Any out-of-range value raises ConfigError;
there is no partial or degraded startup.
"""

from __future__ import annotations
from numbers import Real
from gccluster.messages import MAX_TTL
from gccluster import logger

#-----------------------------------------------------------------------------#

log = logger.addLog('config')

###############################################################################

class ConfigError(ValueError):
    """A configuration option is unknown or outside its valid range."""

###############################################################################

class ClusterConfig:
    """
    Timing, addressing and routing options shared by the nodes of a run.

    Attributes
    ----------
    helloInterval : float, default=1.0
        Period between advertisements (s). 0 disables advertisements. >= 0.
    helloJitter : float, default=0.1
        Upper bound of the uniform random spread added to the first and to
        every subsequent advertisement. >= 0.
    neighborTimeout : float, default=3.5
        Staleness threshold for neighbor eviction (s). Any number.
    maintenanceInterval : float, default=2.0
        Period of the prune + recolor + role cycle (s). > 0.
    coloringInterval : float, default=0.5
        Delay before the one-shot initial coloring pass (s). >= 0.
    coloringJitter : float, default=0.5
        Uniform random spread added to coloringInterval. >= 0.
    dataInterval : float, default=0.0
        Period of synthetic data generation (s). 0 disables it. >= 0.
    dataJitter : float, default=0.0
        Uniform random spread added to each data period. >= 0.
    forwardJitter : float, default=0.01
        Upper bound of the random delay before flood, route-cache and
        gateway-bridging sends (s). >= 0.
    dataTtl : int, default=16
        TTL of originated data units. 1..32767 (int16 wire field).
    localPort : int, default=5000
        Port this node listens on. 1..65535.
    destPort : int, default=5000
        Port this node sends to. 1..65535.
    multicastGroup : str, default='224.0.0.1'
        Group address for advertisements and backbone flooding.


    Examples
    --------
    >>> cfg = ClusterConfig(helloInterval=0.5, neighborTimeout=2.0)
    >>> cfg.maintenanceInterval
    2.0
    >>> ClusterConfig(maintenanceInterval=0)
    Traceback (most recent call last):
        ...
    gccluster.config.ConfigError: maintenanceInterval must be > 0, got 0
    """

    ## Constructor ===========================================================#
    def __init__(self, **kwargs)->None:

        # Timing (s)
        self.helloInterval = 1.0            # advertisement period
        self.helloJitter = 0.1              # advertisement spread
        self.neighborTimeout = 3.5          # neighbor staleness threshold
        self.maintenanceInterval = 2.0      # prune/recolor/role period
        self.coloringInterval = 0.5         # initial coloring delay
        self.coloringJitter = 0.5           # initial coloring spread
        self.dataInterval = 0.0             # data generation period
        self.dataJitter = 0.0               # data generation spread
        self.forwardJitter = 0.01           # delayed-send spread

        # Routing
        self.dataTtl = 16                   # hop budget of new units

        # Addressing
        self.localPort = 5000
        self.destPort = 5000
        self.multicastGroup = '224.0.0.1'

        unknown = set(kwargs) - set(self.__dict__)
        if (unknown):
            raise ConfigError(f'unknown option(s): {sorted(unknown)}')
        self.__dict__.update(kwargs)
        self.validate()

    ## Special Methods =======================================================#
    def __repr__(self)->str:
        opts = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__name__}({opts})"

    def __eq__(self, other)->bool:
        if not (isinstance(other, ClusterConfig)):
            return NotImplemented
        return self.__dict__ == other.__dict__

    ## Methods ===============================================================#
    def validate(self)->None:
        """
        Check every option against its valid range.


        Raises
        ------
        ConfigError
            First option found outside its range.
        """

        for name in ('helloInterval', 'helloJitter', 'coloringInterval',
                     'coloringJitter', 'dataInterval', 'dataJitter',
                     'forwardJitter'):
            self._checkNumber(name)
            if (getattr(self, name) < 0):
                self._fail(name, '>= 0')

        self._checkNumber('neighborTimeout')

        self._checkNumber('maintenanceInterval')
        if (self.maintenanceInterval <= 0):
            self._fail('maintenanceInterval', '> 0')

        if (not isinstance(self.dataTtl, int) or isinstance(self.dataTtl, bool)
                or not 1 <= self.dataTtl <= MAX_TTL):
            self._fail('dataTtl', f'an integer in 1..{MAX_TTL}')

        for name in ('localPort', 'destPort'):
            port = getattr(self, name)
            if (not isinstance(port, int) or isinstance(port, bool)
                    or not 1 <= port <= 65535):
                self._fail(name, 'a port number in 1..65535')

        if (not isinstance(self.multicastGroup, str) or
                not self.multicastGroup):
            self._fail('multicastGroup', 'a non-empty address string')

    #--------------------------------------------------------------------------
    def copy(self, **overrides)->ClusterConfig:
        """Return a validated copy with some options replaced."""
        opts = dict(self.__dict__)
        opts.update(overrides)
        return ClusterConfig(**opts)

    ## Helper Methods ========================================================#
    def _checkNumber(self, name:str)->None:
        value = getattr(self, name)
        if (isinstance(value, bool) or not isinstance(value, Real)):
            self._fail(name, 'a number')

    #--------------------------------------------------------------------------
    def _fail(self, name:str, rule:str)->None:
        msg = f"{name} must be {rule}, got {getattr(self, name)!r}"
        log.error('Invalid configuration: %s', msg)
        raise ConfigError(msg)
