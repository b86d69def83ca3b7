"""
A Field is "fundamental" datatype from the format point of view: something
that knows how to pack a value into bytes and how to parse it back.

Every field follows the same contract

    field.pack(source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed
    field.parse(buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed

where ``source`` is the value to pack or a function without arguments that
returns it (a fetcher) and ``deliver`` is a function receiving the parsed
value. If no buffer is passed to pack() the field returns its own (minimal)
buffer, otherwise it writes into the one passed at ``byte_offset``.

Sizes are in bytes, they are fractional when the field is not a multiple of
eight bits.
"""
import logging
import math
from typing import Any, Callable, Dict, NamedTuple, Optional, Union

from . import serialization
from .exceptions import (
    AlignmentError,
    ConfigurationError,
    InsufficientDataError,
    LengthMismatchError,
    SerializationError,
    UnknownDiscriminantError,
)
from .meta import FieldBase
from .properties import Context, numeric


logger = logging.getLogger(__name__)


Size = Union[int, float]


class Packed(NamedTuple):
    buffer: bytearray
    size: Size

    def __repr__(self):
        return f'<Packed({serialization.hex_buffer(self.buffer)}, size={self.size})>'


class Parsed(NamedTuple):
    data: Any
    size: Size


def fetch_and_encode(source, encode: Optional[Callable] = None, context: Optional[Context] = None):
    '''Called by pack(): the source can be the value itself or a fetcher.'''
    value = source() if callable(source) else source

    if encode is not None:
        return encode(value, context)

    return value


def decode_and_deliver(encoded, decode: Optional[Callable] = None, context: Optional[Context] = None,
                       deliver: Optional[Callable] = None):
    '''Called by parse()'''
    value = decode(encoded, context) if decode is not None else encoded

    if deliver is not None:
        deliver(value)

    return value


def inspect_transcoder(value, context=None):
    '''Pass-through transcoder useful to debug a format definition.'''
    logger.info('value=%r context=%r', value, context)
    return value


inspect_transcoders = {
    'encode': inspect_transcoder,
    'decode': inspect_transcoder,
}


class Field(FieldBase):
    """Base class to subclass from"""

    # set only by the aggregates
    kind = None

    def __init__(self, encode=None, decode=None, little_endian=None):
        self.logger = logging.getLogger(self.__class__.__module__)
        self.encode = encode
        self.decode = decode
        self.little_endian = little_endian

    def __repr__(self):
        return f'<{self.__class__.__name__}()>'

    def get_endianness(self, little_endian):
        '''The endianness of the field wins over the inherited one.'''
        return little_endian if self.little_endian is None else self.little_endian

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        raise NotImplementedError(f'method {self.__class__.__name__}.pack() not implemented')

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        raise NotImplementedError(f'method {self.__class__.__name__}.parse() not implemented')


class PrimitiveField(Field):
    """
    Simplest of the fields: a fixed number of bits interpreted by the codec.

    The subclasses indicate the widths allowed and the functions of the
    codec to use.
    """
    sizes = frozenset()

    def __init__(self, bits, encode=None, decode=None, little_endian=None):
        if not self.verify_size(bits):
            raise ConfigurationError(f'Invalid size for {self.__class__.__name__}: {bits}')

        super().__init__(encode=encode, decode=decode, little_endian=little_endian)
        self.bits = bits

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.bits})>'

    def verify_size(self, bits) -> bool:
        return bits in self.sizes

    def serialize(self, value, buffer, byte_offset, little_endian) -> int:
        raise NotImplementedError()

    def deserialize(self, buffer, byte_offset, little_endian):
        raise NotImplementedError()

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        if buffer is None:
            buffer, byte_offset = bytearray(math.ceil(self.bits / 8)), 0

        encoded = fetch_and_encode(source, self.encode, context)
        written = self.serialize(encoded, buffer, byte_offset, bool(self.get_endianness(little_endian)))

        return Packed(buffer, serialization.bits_to_bytes(written))

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        encoded = self.deserialize(buffer, byte_offset, bool(self.get_endianness(little_endian)))
        data = decode_and_deliver(encoded, self.decode, context, deliver)

        return Parsed(data, serialization.bits_to_bytes(self.bits))


class Bits(PrimitiveField):
    '''Unsigned bit-field of any width up to 64 bits.'''
    sizes = serialization.BITS_SIZES

    def serialize(self, value, buffer, byte_offset, little_endian):
        return serialization.uint_pack(value, self.bits, buffer, byte_offset, little_endian)

    def deserialize(self, buffer, byte_offset, little_endian):
        return serialization.uint_parse(self.bits, buffer, byte_offset, little_endian)


class Uint(Bits):
    sizes = serialization.UINT_SIZES


class Int(PrimitiveField):
    sizes = serialization.INT_SIZES

    def serialize(self, value, buffer, byte_offset, little_endian):
        return serialization.int_pack(value, self.bits, buffer, byte_offset, little_endian)

    def deserialize(self, buffer, byte_offset, little_endian):
        return serialization.int_parse(self.bits, buffer, byte_offset, little_endian)


class Float(PrimitiveField):
    '''IEEE 754 floating point number.'''
    sizes = serialization.FLOAT_SIZES

    def serialize(self, value, buffer, byte_offset, little_endian):
        return serialization.float_pack(value, self.bits, buffer, byte_offset, little_endian)

    def deserialize(self, buffer, byte_offset, little_endian):
        return serialization.float_parse(self.bits, buffer, byte_offset, little_endian)


class Utf8(PrimitiveField):
    '''Fixed width text, the width must be a multiple of 8 bits.'''

    def verify_size(self, bits) -> bool:
        return isinstance(bits, int) and serialization.is_text_size(bits)

    def serialize(self, value, buffer, byte_offset, little_endian):
        return serialization.utf8_pack(value, self.bits, buffer, byte_offset)

    def deserialize(self, buffer, byte_offset, little_endian):
        return serialization.utf8_parse(self.bits, buffer, byte_offset)


class Padding(Field):
    '''Reserves a number of bits without caring about their content.

    Packing writes something only if an ``encode`` is indicated: it's called
    once and the value returned is used to fill the space, byte by byte
    starting from its least significant one. Parsing doesn't read anything,
    a value is produced only if a ``decode`` is indicated.'''

    def __init__(self, bits=0, encode=None, decode=None):
        super().__init__(encode=encode, decode=decode)
        self.bits = bits

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.bits!r})>'

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        size = numeric(self.bits, context, unit='b')

        if buffer is None:
            buffer, byte_offset = bytearray(math.ceil(size / 8)), 0

        if self.encode is not None:
            fill = self.encode(None, context)
            whole, remainder = divmod(size, 8)
            for index in range(whole):
                serialization.uint_pack(fill & 0xff, 8, buffer, byte_offset + index)
                fill >>= 8

            if remainder:
                serialization.uint_pack(fill & ((1 << remainder) - 1), remainder, buffer, byte_offset + whole)

        return Packed(buffer, serialization.bits_to_bytes(size))

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        size = numeric(self.bits, context, unit='b')

        data = None
        if self.decode is not None:
            data = decode_and_deliver(self.decode(None, context), deliver=deliver)

        return Parsed(data, serialization.bits_to_bytes(size))


def _aligned(value, what) -> int:
    if value != int(value):
        raise AlignmentError(f'{what} must be a whole number of bytes, not {value}')

    return int(value)


class ByteBuffer(Field):
    """Represent a contiguous chunk of bytes, copied verbatim.

    It works only on byte-aligned data."""

    def __init__(self, length, encode=None, decode=None):
        super().__init__(encode=encode, decode=decode)
        self.length = length

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.length!r})>'

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        size = _aligned(numeric(self.length, context), 'the length')
        # the offset is the real one also when packing a fragment
        byte_offset = _aligned(byte_offset, 'the offset')

        value = fetch_and_encode(source, self.encode, context)
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise SerializationError(f'cannot pack {value!r} as bytes')

        data = bytes(value)
        if len(data) != size:
            raise LengthMismatchError(f'Length mismatch. Expected length: {size}, actual length: {len(data)}')

        if buffer is None:
            return Packed(bytearray(data), size)

        if byte_offset + size > len(buffer):
            raise InsufficientDataError(f'cannot write {size} bytes at {byte_offset}: the buffer is {len(buffer)} bytes long')

        buffer[byte_offset:byte_offset + size] = data

        return Packed(buffer, size)

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        size = _aligned(numeric(self.length, context), 'the length')
        byte_offset = _aligned(byte_offset, 'the offset')

        data = bytes(buffer[byte_offset:byte_offset + size])
        if len(data) != size:
            raise InsufficientDataError(f'cannot read {size} bytes at {byte_offset}: the buffer is {len(buffer)} bytes long')

        return Parsed(decode_and_deliver(data, self.decode, context, deliver), size)


class Branch(Field):
    """Allow to select the kind of final field based on the document being built.

    You need to pass a function that receives the context and returns the key,
    and a dictionary with the mapping between keys and fields. If the key is not
    present the ``default_choice`` is used, if any.

        Branch(
            chooser=lambda context: context['type'],
            choices={
                0: Uint(8),
                1: Uint(16),
            },
        )

    The key itself doesn't take any space.
    """

    def __init__(self, chooser: Callable, choices: Dict[Any, Field], default_choice: Optional[Field] = None):
        super().__init__()
        self.chooser = chooser
        self.choices = choices
        self.default_choice = default_choice

    def __repr__(self):
        return f'<{self.__class__.__name__}({list(self.choices)!r})>'

    def choose(self, context) -> Field:
        choice = self.chooser(context)

        if choice in self.choices:
            self.logger.debug('using choice %r', choice)
            return self.choices[choice]

        if self.default_choice is not None:
            self.logger.debug('choice %r not found, using the default', choice)
            return self.default_choice

        raise UnknownDiscriminantError(f'Choice {choice!r} not in {list(self.choices)!r}')

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        return self.choose(context).pack(
            source, buffer=buffer, byte_offset=byte_offset, little_endian=little_endian, context=context)

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        return self.choose(context).parse(
            buffer, byte_offset=byte_offset, little_endian=little_endian, context=context, deliver=deliver)
