"""
Bit-level codec used by the primitive fields.

All the functions work on a region of bytes (a ``bytearray`` when writing,
any bytes-like object when reading) and a byte offset that can be fractional
(a multiple of 1/8): the values are placed MSB-first starting from the bit
``byte_offset * 8`` and the bits around them are left untouched.

The heavy lifting is done by bitstring.
"""
import math

from bitstring import Bits, BitArray

from .exceptions import (
    InsufficientDataError,
    LengthMismatchError,
    SerializationError,
)


BITS_SIZES = frozenset(range(1, 65))
UINT_SIZES = frozenset((8, 16, 32, 64))
INT_SIZES = frozenset((8, 16, 32, 64))
FLOAT_SIZES = frozenset((32, 64))


def is_text_size(bits) -> bool:
    return bits > 0 and bits % 8 == 0


def bits_to_bytes(bits):
    '''Size in bytes, fractional only when it doesn't end on a byte boundary.'''
    if bits % 8:
        return bits / 8

    return bits // 8


def as_size(size):
    '''Normalize a size accumulated from fragments.'''
    if size == int(size):
        return int(size)

    return size


def hex_buffer(buffer) -> str:
    return Bits(bytes=bytes(buffer)).hex


def _bit_position(byte_offset) -> int:
    return round(byte_offset * 8)


def _region(start: int, length: int):
    first = start // 8
    last = math.ceil((start + length) / 8)
    return first, last


def _write(value: Bits, buffer, byte_offset) -> int:
    start = _bit_position(byte_offset)
    first, last = _region(start, len(value))

    if last > len(buffer):
        raise InsufficientDataError(
            f'cannot write {len(value)} bits at bit {start}: the buffer is {len(buffer)} bytes long')

    region = BitArray(bytes=bytes(buffer[first:last]))
    region.overwrite(value, start - first * 8)
    buffer[first:last] = region.bytes

    return len(value)


def _read(bits: int, buffer, byte_offset) -> Bits:
    start = _bit_position(byte_offset)
    first, last = _region(start, bits)

    if last > len(buffer):
        raise InsufficientDataError(
            f'cannot read {bits} bits at bit {start}: the buffer is {len(buffer)} bytes long')

    region = Bits(bytes=bytes(buffer[first:last]))
    skip = start - first * 8

    return region[skip:skip + bits]


def _interpretation(kind: str, bits: int, little_endian: bool) -> str:
    # bitstring knows about endianness only for whole bytes
    if little_endian and bits % 8 == 0:
        return kind + 'le'

    if kind == 'float':
        return 'floatbe'

    return kind


def _encode(kind: str, value, bits: int, little_endian: bool) -> Bits:
    interpretation = _interpretation(kind, bits, little_endian)
    try:
        return Bits(**{interpretation: value, 'length': bits})
    except (ValueError, TypeError, OverflowError) as e:
        raise SerializationError(f'cannot encode {value!r} as a {bits}-bit {kind}') from e


def _decode(kind: str, bits: int, buffer, byte_offset, little_endian: bool):
    return getattr(_read(bits, buffer, byte_offset), _interpretation(kind, bits, little_endian))


def uint_pack(value, bits, buffer, byte_offset=0, little_endian=False) -> int:
    return _write(_encode('uint', value, bits, little_endian), buffer, byte_offset)


def uint_parse(bits, buffer, byte_offset=0, little_endian=False) -> int:
    return _decode('uint', bits, buffer, byte_offset, little_endian)


def int_pack(value, bits, buffer, byte_offset=0, little_endian=False) -> int:
    return _write(_encode('int', value, bits, little_endian), buffer, byte_offset)


def int_parse(bits, buffer, byte_offset=0, little_endian=False) -> int:
    return _decode('int', bits, buffer, byte_offset, little_endian)


def float_pack(value, bits, buffer, byte_offset=0, little_endian=False) -> int:
    return _write(_encode('float', value, bits, little_endian), buffer, byte_offset)


def float_parse(bits, buffer, byte_offset=0, little_endian=False) -> float:
    return _decode('float', bits, buffer, byte_offset, little_endian)


def utf8_pack(value, bits, buffer, byte_offset=0, little_endian=False) -> int:
    '''Text is NUL padded up to the width of the field.'''
    try:
        raw = value.encode('utf-8')
    except AttributeError as e:
        raise SerializationError(f'cannot encode {value!r} as text') from e

    length = bits // 8
    if len(raw) > length:
        raise LengthMismatchError(f'text {value!r} needs {len(raw)} bytes but the field is {length} bytes wide')

    return _write(Bits(bytes=raw.ljust(length, b'\x00')), buffer, byte_offset)


def utf8_parse(bits, buffer, byte_offset=0, little_endian=False) -> str:
    raw = _read(bits, buffer, byte_offset).bytes
    try:
        return raw.rstrip(b'\x00').decode('utf-8')
    except UnicodeDecodeError as e:
        raise SerializationError(f'{raw!r} is not valid UTF-8') from e
