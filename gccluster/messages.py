"""
Wire messages exchanged between nodes and their binary codec.

Two message kinds travel over the transport: the periodic multicast
Advertisement that feeds neighbor tables, and the DataUnit carrying
application traffic. Both are serialized with the construct library into
fixed-size little-endian frames led by a 4-byte type flag.


Classes
-------
Advertisement
    Decoded advertisement (sender id, color, role, cluster id).
DataUnit
    Decoded data unit (source, sequence, TTL, destination, next hop,
    creation time).
MessageError
    Raised for payloads that cannot be decoded.


Functions
---------
getMsgStruct(msgType) : Return the construct Struct for a message type.
writeAdvertisement(advert) : Serialize an Advertisement.
writeDataUnit(unit) : Serialize a DataUnit.
parseMessage(payload) : Decode a frame into Advertisement or DataUnit.


Notes
-----
**Frame Layouts:**

.. code-block:: none

    HELO (Advertisement) - 18 bytes
    Field              Type       Bytes   Description
    -----              ----       -----   -----------
    type               bytes(4)   4       b'HELO'
    sender_id          int32      4       Advertising node id
    color              int32      4       Color, -1 if unassigned
    role               uint8      1       Role enum 0..3
    cluster_id         int32      4       Cluster Head id, -1 if none
    (padding)                     1       Filler

    DATA (DataUnit) - 130 bytes
    Field              Type       Bytes   Description
    -----              ----       -----   -----------
    type               bytes(4)   4       b'DATA'
    source_id          int32      4       Originating node id
    sequence_number    uint32     4       Per-source sequence number
    ttl                int16      2       Remaining hop budget
    destination_id     int32      4       Final destination id
    next_hop_id        int32      4       Explicit next hop, -1 if unset
    created            float64    8       Creation time (virtual seconds)
    (padding)                     100     Filler

The filler keeps the transport from ever carrying an empty body.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Tuple, Union
import construct as cst
from gccluster.state import NO_NEXT_HOP, Role

#-----------------------------------------------------------------------------#

FLAG_SIZE = 4
ADVT_FLAG = b'HELO'
DATA_FLAG = b'DATA'
ADVT_FILLER = 1
DATA_FILLER = 100
MAX_TTL = 32767                 # largest value of the int16 ttl field

MSG_TYPES = {
    'HELO': 'HELO',
    'ADVERTISEMENT': 'HELO',
    'DATA': 'DATA',
    'DATAUNIT': 'DATA',
}

###############################################################################

class MessageError(ValueError):
    """Payload is empty, truncated, of unknown type, or malformed."""

###############################################################################

@dataclass(frozen=True)
class Advertisement:
    """Periodic neighbor advertisement."""

    senderId: int
    color: int
    role: Role
    clusterId: int

###############################################################################

@dataclass(frozen=True)
class DataUnit:
    """
    Application data unit routed by the data plane.

    Attributes
    ----------
    sourceId : int
        Originating node.
    sequenceNumber : int
        Sequence number assigned by the source.
    ttl : int
        Remaining hop budget. Decremented once per relay.
    destinationId : int
        Final destination node.
    nextHopId : int
        Node expected to process this copy, or NO_NEXT_HOP.
    created : float
        Virtual time of origination.
    """

    sourceId: int
    sequenceNumber: int
    ttl: int
    destinationId: int
    nextHopId: int = NO_NEXT_HOP
    created: float = 0.0

    @property
    def key(self)->Tuple[int, int]:
        """Duplicate-suppression key."""
        return (self.sourceId, self.sequenceNumber)

    def addressedTo(self, nextHopId:int)->DataUnit:
        """Copy with a new explicit next hop and unchanged TTL."""
        return replace(self, nextHopId=nextHopId)

###############################################################################

def getMsgStruct(msgType:str)->cst.Struct:
    """
    Return binary frame structure for serialization/parsing.


    Parameters
    ----------
    msgType : {'HELO', 'ADVERTISEMENT', 'DATA', 'DATAUNIT'}
        Message type identifier. Case-insensitive.


    Returns
    -------
    cst.Struct or None
        Construct Struct. Use .build(dict) to serialize and .parse(bytes) to
        deserialize. None for an unknown type. Aliases of one type return
        the same cached Struct.
    """

    name = MSG_TYPES.get(msgType.upper())
    if (name is None):
        return None
    return _buildMsgStruct(name)

#------------------------------------------------------------------------------

@lru_cache(maxsize=None)
def _buildMsgStruct(name:str)->cst.Struct:
    """Build the Struct of a canonical message type name."""

    i32 = cst.Int32sl

    HELO = cst.Struct(
        "type"              / cst.Const(ADVT_FLAG),
        "sender_id"         / i32,
        "color"             / i32,
        "role"              / cst.Int8ul,
        "cluster_id"        / i32,
        cst.Padding(ADVT_FILLER),
    )

    DATA = cst.Struct(
        "type"              / cst.Const(DATA_FLAG),
        "source_id"         / i32,
        "sequence_number"   / cst.Int32ul,
        "ttl"               / cst.Int16sl,
        "destination_id"    / i32,
        "next_hop_id"       / i32,
        "created"           / cst.Float64l,
        cst.Padding(DATA_FILLER),
    )

    msgStructures = {
        'HELO': HELO,
        'DATA': DATA,
    }
    return msgStructures[name]

###############################################################################

def writeAdvertisement(advert:Advertisement)->bytes:
    """Serialize an Advertisement into a HELO frame."""

    return getMsgStruct('HELO').build({
        'sender_id': advert.senderId,
        'color': advert.color,
        'role': int(advert.role),
        'cluster_id': advert.clusterId,
    })

###############################################################################

def writeDataUnit(unit:DataUnit)->bytes:
    """Serialize a DataUnit into a DATA frame."""

    return getMsgStruct('DATA').build({
        'source_id': unit.sourceId,
        'sequence_number': unit.sequenceNumber,
        'ttl': unit.ttl,
        'destination_id': unit.destinationId,
        'next_hop_id': unit.nextHopId,
        'created': unit.created,
    })

###############################################################################

def parseMessage(payload:bytes)->Union[Advertisement, DataUnit]:
    """
    Decode a received frame.


    Parameters
    ----------
    payload : bytes
        Complete frame including the 4-byte type flag.


    Returns
    -------
    Advertisement or DataUnit


    Raises
    ------
    MessageError
        Empty or short payload, unknown flag, wrong frame length, or a field
        outside its domain (role not in 0..3).
    """

    if (not payload or len(payload) < FLAG_SIZE):
        raise MessageError('short or empty payload')

    flag = bytes(payload[:FLAG_SIZE])
    if (flag == ADVT_FLAG):
        struct = getMsgStruct('HELO')
    elif (flag == DATA_FLAG):
        struct = getMsgStruct('DATA')
    else:
        raise MessageError(f'unknown message flag {flag!r}')

    if (len(payload) != struct.sizeof()):
        raise MessageError(f'{flag.decode("ascii")} frame has '
                           f'{len(payload)} bytes, expected {struct.sizeof()}')
    try:
        msg = struct.parse(payload)
    except cst.ConstructError as e:
        raise MessageError(f'cannot parse {flag!r}: {e}') from e

    if (flag == ADVT_FLAG):
        try:
            role = Role(msg.role)
        except ValueError as e:
            raise MessageError(f'invalid role value {msg.role}') from e
        return Advertisement(senderId=msg.sender_id, color=msg.color,
                             role=role, clusterId=msg.cluster_id)

    return DataUnit(sourceId=msg.source_id,
                    sequenceNumber=msg.sequence_number,
                    ttl=msg.ttl,
                    destinationId=msg.destination_id,
                    nextHopId=msg.next_hop_id,
                    created=msg.created)
