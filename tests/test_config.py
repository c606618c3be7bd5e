"""ClusterConfig defaults and startup validation."""

import pytest
from gccluster.config import ClusterConfig, ConfigError
from gccluster.messages import (MAX_TTL, DataUnit, parseMessage,
                                writeDataUnit)

###############################################################################

def test_defaults():
    cfg = ClusterConfig()
    assert cfg.helloInterval == 1.0
    assert cfg.maintenanceInterval == 2.0
    assert cfg.dataInterval == 0.0
    assert cfg.dataTtl == 16
    assert cfg.localPort == cfg.destPort == 5000
    assert cfg.multicastGroup == '224.0.0.1'

#------------------------------------------------------------------------------

def test_overrides():
    cfg = ClusterConfig(helloInterval=0.5, neighborTimeout=2.0, destPort=6000)
    assert cfg.helloInterval == 0.5
    assert cfg.neighborTimeout == 2.0
    assert cfg.destPort == 6000

#------------------------------------------------------------------------------

@pytest.mark.parametrize('option, value', [
    ('helloInterval', -0.1),
    ('helloJitter', -1),
    ('coloringInterval', -1.0),
    ('coloringJitter', -0.5),
    ('dataInterval', -2),
    ('dataJitter', -0.01),
    ('forwardJitter', -0.01),
    ('maintenanceInterval', 0),
    ('maintenanceInterval', -1.0),
    ('dataTtl', 0),
    ('dataTtl', 2.5),
    ('dataTtl', 32768),
    ('dataTtl', 40000),
    ('localPort', 0),
    ('destPort', 65536),
    ('localPort', True),
    ('helloInterval', 'fast'),
    ('neighborTimeout', None),
    ('multicastGroup', ''),
])
def test_invalid_values_are_fatal(option, value):
    with pytest.raises(ConfigError, match=option):
        ClusterConfig(**{option: value})

#------------------------------------------------------------------------------

def test_largest_ttl_fits_the_wire():
    cfg = ClusterConfig(dataTtl=MAX_TTL)
    unit = DataUnit(1, 1, cfg.dataTtl, 2)
    assert parseMessage(writeDataUnit(unit)).ttl == MAX_TTL

#------------------------------------------------------------------------------

def test_zero_intervals_are_valid():
    cfg = ClusterConfig(helloInterval=0, dataInterval=0, helloJitter=0,
                        coloringInterval=0, coloringJitter=0, forwardJitter=0)
    assert cfg.helloInterval == 0

#------------------------------------------------------------------------------

def test_neighbor_timeout_accepts_any_number():
    assert ClusterConfig(neighborTimeout=-5.0).neighborTimeout == -5.0

#------------------------------------------------------------------------------

def test_unknown_option_rejected():
    with pytest.raises(ConfigError, match='unknown'):
        ClusterConfig(helloIntervall=1.0)

#------------------------------------------------------------------------------

def test_copy_revalidates():
    cfg = ClusterConfig(helloInterval=0.5)
    other = cfg.copy(dataInterval=1.0)
    assert other.helloInterval == 0.5 and other.dataInterval == 1.0
    assert cfg.dataInterval == 0.0
    assert cfg.copy() == cfg
    with pytest.raises(ConfigError):
        cfg.copy(maintenanceInterval=0)

#------------------------------------------------------------------------------

def test_validate_catches_later_mutation():
    cfg = ClusterConfig()
    cfg.localPort = -1
    with pytest.raises(ConfigError):
        cfg.validate()
