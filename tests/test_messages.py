"""Wire codec for advertisements and data units."""

import pytest
from gccluster.messages import (Advertisement, DataUnit, MessageError,
                                getMsgStruct, parseMessage,
                                writeAdvertisement, writeDataUnit)
from gccluster.state import NO_CLUSTER, NO_NEXT_HOP, Role, UNASSIGNED

###############################################################################

def test_frame_sizes():
    assert getMsgStruct('HELO').sizeof() == 18
    assert getMsgStruct('data').sizeof() == 130
    assert getMsgStruct('advertisement') is getMsgStruct('HELO')
    assert getMsgStruct('DataUnit') is getMsgStruct('data')
    assert getMsgStruct('NOPE') is None

#------------------------------------------------------------------------------

def test_advertisement_frame():
    advert = Advertisement(senderId=12, color=UNASSIGNED,
                           role=Role.UNDECIDED, clusterId=NO_CLUSTER)
    frame = writeAdvertisement(advert)
    assert frame[:4] == b'HELO'
    assert len(frame) == 18
    decoded = parseMessage(frame)
    assert decoded == advert
    assert isinstance(decoded.role, Role)

#------------------------------------------------------------------------------

def test_data_unit_frame():
    unit = DataUnit(sourceId=7, sequenceNumber=5, ttl=3, destinationId=42,
                    nextHopId=9, created=12.625)
    frame = writeDataUnit(unit)
    assert frame[:4] == b'DATA'
    assert len(frame) == 130
    assert parseMessage(frame) == unit

#------------------------------------------------------------------------------

def test_data_unit_copies():
    unit = DataUnit(7, 5, 3, 42)
    assert unit.nextHopId == NO_NEXT_HOP
    assert unit.key == (7, 5)
    hop = unit.addressedTo(9)
    assert (hop.ttl, hop.nextHopId) == (3, 9)
    assert hop.key == unit.key

###############################################################################

@pytest.mark.parametrize('payload', [b'', b'HE', b'HELO'])
def test_short_payload_rejected(payload):
    with pytest.raises(MessageError):
        parseMessage(payload)

#------------------------------------------------------------------------------

def test_unknown_flag_rejected():
    with pytest.raises(MessageError, match='unknown message flag'):
        parseMessage(b'XXXX' + bytes(14))

#------------------------------------------------------------------------------

def test_wrong_length_rejected():
    frame = writeAdvertisement(Advertisement(1, 0, Role.CLUSTER_HEAD, 1))
    with pytest.raises(MessageError, match='expected 18'):
        parseMessage(frame + b'\x00')
    with pytest.raises(MessageError):
        parseMessage(frame[:-1])

#------------------------------------------------------------------------------

def test_invalid_role_rejected():
    frame = bytearray(writeAdvertisement(
        Advertisement(1, 0, Role.CLUSTER_HEAD, 1)))
    frame[12] = 9
    with pytest.raises(MessageError, match='invalid role'):
        parseMessage(bytes(frame))

#------------------------------------------------------------------------------

def test_message_error_is_value_error():
    assert issubclass(MessageError, ValueError)
