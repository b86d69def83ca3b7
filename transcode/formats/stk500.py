'''
Description of STK500 Communication protocol.

http://ww1.microchip.com/downloads/en/AppNotes/doc2591.pdf

ANALYSIS
--------

The transport layer wraps a message body whose length is indicated by
the header; the body is the application layer, composed of request and
response of command.

The checksum is not calculated automatically: use checksum() to obtain it
before packing a packet.
'''
from functools import reduce

from ..constants import Uint8
from ..core import BinaryMap
from ..fields import ByteBuffer, Uint
from ..properties import Dependency


MESSAGE_START = 0x1b
TOKEN = 0x0e

CMD_SIGN_ON = 0x01
STATUS_CMD_OK = 0x00


class STK500Packet(BinaryMap):
    '''Transport layer'''
    message_start   = Uint8
    sequence_number = Uint8
    message_size    = Uint(16, little_endian=False)
    token           = Uint8
    message_body    = ByteBuffer(Dependency('.message_size'))
    checksum        = Uint8


def checksum(packet: dict) -> int:
    '''XOR of all the bytes of the packet, checksum excluded.'''
    header = [
        packet['message_start'],
        packet['sequence_number'],
        packet['message_size'] >> 8,
        packet['message_size'] & 0xff,
        packet['token'],
    ]
    return reduce(lambda a, b: a ^ b, header + list(packet['message_body']), 0)


'''
Application layer
'''


class STK500CmdSignOnResponse(BinaryMap):
    answer_id = Uint8
    status    = Uint8
    signature_length = Uint8
    signature = ByteBuffer(
        Dependency('.signature_length'),
        encode=lambda text, context: text.encode('ascii'),
        decode=lambda raw, context: raw.decode('ascii'),
    )
