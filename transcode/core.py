"""
Core module: the aggregates that compose fields into a format.

A BinaryMap builds a dict from an ordered set of named fields, a BinaryArray
builds a list from an ordered set of anonymous fields. While an aggregate is
packing/parsing its children receive a Context wrapping the document being
built, linked to the context of the enclosing aggregate: this is how a field
can depend on something already decoded.

If no buffer is passed to pack(), each child returns its own fragment and the
aggregate concatenates them at the end (see concat_buffers()). The children
receive their real offset anyway, so byte-aligned fields can check it.
"""
import math
from collections.abc import Mapping
from functools import partial
from types import SimpleNamespace
from typing import Callable, Dict, Iterable, List, Tuple, Union

from .exceptions import (
    ConfigurationError,
    InsufficientDataError,
    MissingFieldError,
    OverrunError,
    TranscodeException,
)
from .fields import (
    Bits,
    Field,
    Packed,
    Parsed,
    Uint,
    decode_and_deliver,
    fetch_and_encode,
)
from .meta import AggregateKind, MetaMap
from .properties import Context, numeric
from .serialization import as_size


class Cursor(object):
    '''Fetcher pulling, one at a time, the elements of a sequence.'''

    def __init__(self, items: Iterable):
        try:
            self.items = list(items)
        except TypeError as e:
            raise InsufficientDataError(f'{items!r} is not a sequence of values') from e
        self.position = 0

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.position}/{len(self.items)})>'

    def __call__(self):
        if self.position >= len(self.items):
            raise InsufficientDataError(
                f'Insufficient data for serialization: only {len(self.items)} element(s) available')

        value = self.items[self.position]
        self.position += 1

        return value

    @property
    def pending(self) -> int:
        return len(self.items) - self.position


def concat_buffers(fragments: List[Packed], byte_length) -> bytearray:
    '''Copy the fragments one after the other into a new buffer.

    A fragment can end in the middle of a byte: its trailing bits are packed
    as a bit-field so that the next fragment starts right after them.'''
    buffer = bytearray(math.ceil(byte_length))
    byte = Uint(8)
    byte_offset = 0
    for fragment in fragments:
        whole = int(fragment.size)
        remainder = round((fragment.size - whole) * 8)

        array = BinaryArray(*[byte] * whole)
        values = list(fragment.buffer[:whole])
        if remainder:
            array.append(Bits(remainder))
            values.append(fragment.buffer[whole] >> (8 - remainder))

        array.pack(values, buffer=buffer, byte_offset=byte_offset)
        byte_offset += fragment.size

    return buffer


class Aggregate(Field):
    '''Common machinery of the fields made of other fields.

    The subclasses implement pack_loop() and parse_loop(): a single pass over
    the children against a document that is passed from outside, this is what
    Repeat and Embed use to work on a document they didn't create.'''

    def pack_loop(self, source, document: Context, store: Callable, buffer=None, byte_offset=0,
                  little_endian=None):
        raise NotImplementedError()

    def parse_loop(self, buffer, document: Context, byte_offset=0, little_endian=None):
        raise NotImplementedError()

    def pack_document(self, source, document: Context, buffer=None, byte_offset=0, little_endian=None) -> Packed:
        fragments: List[Packed] = []
        size = self.pack_loop(source, document, fragments.append,
                              buffer=buffer, byte_offset=byte_offset, little_endian=little_endian)

        if buffer is None:
            buffer = concat_buffers(fragments, size)

        return Packed(buffer, size)


class BinaryMap(Aggregate, metaclass=MetaMap):
    '''Ordered set of named fields building a dict.

    The fields can be passed as a list of couples (name, field)

        BinaryMap([
            ('type', Uint8),
            ('length', Uint16),
        ])

    or declared in a subclass

        class Header(BinaryMap):
            type = Uint8
            length = Uint16
    '''
    kind = AggregateKind.NAMED

    def __init__(self, fields: Union[Iterable[Tuple[str, Field]], Dict[str, Field]] = (),
                 encode=None, decode=None, little_endian=None):
        super().__init__(encode=encode, decode=decode, little_endian=little_endian)
        self._fields: Dict[str, Field] = dict(self._meta.fields)

        if isinstance(fields, dict):
            fields = fields.items()

        for name, field in fields:
            self._fields[name] = field

    def __repr__(self):
        msg = []
        for field_name, field in self._fields.items():
            msg.append('%s=%s' % (field_name, repr(field)))
        return '<%s(%s)>' % (self.__class__.__name__, ','.join(msg))

    def __getitem__(self, name: str) -> Field:
        return self._fields[name]

    def __setitem__(self, name: str, field: Field):
        self._fields[name] = field

    def __contains__(self, name):
        return name in self._fields

    def __iter__(self):
        return iter(self._fields)

    def __len__(self):
        return len(self._fields)

    def get_fields(self) -> List[Tuple[str, Field]]:
        '''It returns a list of couples (name, instance) for each field.'''
        return list(self._fields.items())

    def _fetcher(self, document: Context, name: str):
        # the lookup is lazy: fields like Padding never ask for their value
        def fetch():
            if not isinstance(document.data, Mapping) or name not in document.data:
                raise MissingFieldError(
                    f"Insufficient data for serialization: '{name}' not in {document.data!r}")

            return document.data[name]

        return fetch

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        encoded = fetch_and_encode(source, self.encode, context)

        with Context(encoded, self.kind, parent=context) as document:
            return self.pack_document(None, document, buffer=buffer, byte_offset=byte_offset,
                                      little_endian=little_endian)

    def pack_loop(self, source, document, store, buffer=None, byte_offset=0, little_endian=None):
        '''The values are looked up by name in the document, the source is not used.'''
        little_endian = self.get_endianness(little_endian)

        offset = 0
        for field_name, field in self._fields.items():
            self.logger.debug('packing %s.%s at offset %s', self.__class__.__name__, field_name, offset)
            try:
                packed = field.pack(
                    self._fetcher(document, field_name),
                    buffer=buffer,
                    byte_offset=byte_offset + offset,
                    little_endian=little_endian,
                    context=document,
                )
            except TranscodeException as e:
                e.chain.append(field_name)
                raise

            store(packed)
            offset += packed.size

        return as_size(offset)

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        with Context({}, self.kind, parent=context) as document:
            size = self.parse_loop(buffer, document, byte_offset=byte_offset, little_endian=little_endian)

        data = decode_and_deliver(document.data, self.decode, context, deliver)

        return Parsed(data, size)

    def parse_loop(self, buffer, document, byte_offset=0, little_endian=None):
        little_endian = self.get_endianness(little_endian)

        offset = 0
        for field_name, field in self._fields.items():
            self.logger.debug('parsing %s.%s at offset %s', self.__class__.__name__, field_name, byte_offset + offset)
            try:
                parsed = field.parse(
                    buffer,
                    byte_offset=byte_offset + offset,
                    little_endian=little_endian,
                    context=document,
                    deliver=partial(document.data.__setitem__, field_name),
                )
            except TranscodeException as e:
                e.chain.append(field_name)
                raise

            offset += parsed.size

        return as_size(offset)


def object_encoder(obj, context=None) -> dict:
    return dict(vars(obj))


def object_decoder(mapping, context=None) -> SimpleNamespace:
    return SimpleNamespace(**mapping)


# to pack/parse objects with attributes instead of dicts
OBJECT_TRANSCODERS = {
    'encode': object_encoder,
    'decode': object_decoder,
}


class BinaryArray(Aggregate):
    '''Ordered list of anonymous fields building a list.

    Each field pulls its value from a cursor shared among the children, so
    the source must contain (at least) one element per field.

    This class behaves like a list of fields.
    '''
    kind = AggregateKind.POSITIONAL

    def __init__(self, *fields: Field, encode=None, decode=None, little_endian=None):
        super().__init__(encode=encode, decode=decode, little_endian=little_endian)
        self._fields: List[Field] = list(fields)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self._fields!r})>'

    def __getitem__(self, index) -> Field:
        return self._fields[index]

    def __iter__(self):
        return iter(self._fields)

    def __len__(self):
        return len(self._fields)

    def append(self, field: Field):
        self._fields.append(field)

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        cursor = Cursor(fetch_and_encode(source, self.encode, context))

        with Context(cursor.items, self.kind, parent=context) as document:
            packed = self.pack_document(cursor, document, buffer=buffer, byte_offset=byte_offset,
                                        little_endian=little_endian)

        self.check_exhausted(cursor, packed.size)

        return packed

    def check_exhausted(self, cursor: Cursor, size):
        '''Called at the end of pack() with the elements left in the source.'''
        pass

    def pack_loop(self, source, document, store, buffer=None, byte_offset=0, little_endian=None):
        little_endian = self.get_endianness(little_endian)

        offset = 0
        for index, field in enumerate(self._fields):
            try:
                packed = field.pack(
                    source,
                    buffer=buffer,
                    byte_offset=byte_offset + offset,
                    little_endian=little_endian,
                    context=document,
                )
            except TranscodeException as e:
                e.chain.append(index)
                raise

            store(packed)
            offset += packed.size

        return as_size(offset)

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        with Context([], self.kind, parent=context) as document:
            size = self.parse_loop(buffer, document, byte_offset=byte_offset, little_endian=little_endian)

        data = decode_and_deliver(document.data, self.decode, context, deliver)

        return Parsed(data, size)

    def parse_loop(self, buffer, document, byte_offset=0, little_endian=None):
        little_endian = self.get_endianness(little_endian)

        offset = 0
        for index, field in enumerate(self._fields):
            try:
                parsed = field.parse(
                    buffer,
                    byte_offset=byte_offset + offset,
                    little_endian=little_endian,
                    context=document,
                    deliver=document.data.append,
                )
            except TranscodeException as e:
                e.chain.append(index)
                raise

            offset += parsed.size

        return as_size(offset)


class Repeat(BinaryArray):
    '''Repeat the fields either a number of times or until a number of bytes is filled.

        Repeat(Uint8, count=Dependency('.n'))
        Repeat(Uint16, bytes=4)

    The count and the bytes are resolved with respect to the context where the
    Repeat lives (i.e. they can refer to its siblings). With ``bytes`` the
    last pass must end exactly at the limit, otherwise OverrunError is raised.
    '''

    def __init__(self, *fields: Field, count=None, bytes=None, encode=None, decode=None, little_endian=None):
        if count is None and bytes is None:
            raise ConfigurationError('One of count or bytes must be specified')

        super().__init__(*fields, encode=encode, decode=decode, little_endian=little_endian)
        self.count = count
        self.budget = bytes

    def __repr__(self):
        policy = f'count={self.count!r}' if self.count is not None else f'bytes={self.budget!r}'
        return f'<{self.__class__.__name__}({self._fields!r}, {policy})>'

    def _passes(self, document: Context, loop: Callable, verb: str):
        parent = document.parent

        offset = 0
        if self.count is not None:
            repeat = numeric(self.count, parent)
            if repeat != int(repeat):
                raise ConfigurationError(f'Invalid count: {repeat}')

            self.logger.debug('%s %d times', verb, repeat)
            for index in range(int(repeat)):
                try:
                    offset = as_size(offset + loop(offset))
                except TranscodeException as e:
                    e.chain.append(index)
                    raise

            return offset

        limit = numeric(self.budget, parent)
        self.logger.debug('%s %s bytes', verb, limit)
        index = 0
        while offset < limit:
            try:
                size = loop(offset)
            except TranscodeException as e:
                e.chain.append(index)
                raise

            if size == 0:
                raise ConfigurationError(f'the fields take no space, cannot fill {limit} bytes')

            offset = as_size(offset + size)
            index += 1

        if offset > limit:
            raise OverrunError(f'Cannot {verb} exactly {limit} bytes: the last element ends at {offset}')

        return offset

    def pack_loop(self, source, document, store, buffer=None, byte_offset=0, little_endian=None):
        pack_loop = super().pack_loop

        def loop(offset):
            return pack_loop(source, document, store, buffer=buffer,
                             byte_offset=byte_offset + offset,
                             little_endian=little_endian)

        return self._passes(document, loop, 'pack')

    def parse_loop(self, buffer, document, byte_offset=0, little_endian=None):
        parse_loop = super().parse_loop

        def loop(offset):
            return parse_loop(buffer, document, byte_offset=byte_offset + offset, little_endian=little_endian)

        return self._passes(document, loop, 'parse')

    def check_exhausted(self, cursor, size):
        if self.budget is not None and cursor.pending:
            raise OverrunError(
                f'Cannot pack into {size} bytes: {cursor.pending} element(s) left')


class Embed(Field):
    '''Put the fields of an aggregate directly into the enclosing document.

        inner = BinaryMap([('a', Uint8), ('b', Uint8)])
        outer = BinaryMap([('c', Uint8), ('inner', Embed(inner))])

    packs and parses {'c': ..., 'a': ..., 'b': ...}. The kind of the embedded
    aggregate must match the kind of the enclosing one. Used outside of any
    aggregate it's transparent.
    '''

    def __init__(self, struct: Aggregate):
        if struct.kind not in (AggregateKind.NAMED, AggregateKind.POSITIONAL):
            raise ConfigurationError(f'cannot embed {struct!r}: only BinaryMap and BinaryArray can be embedded')

        super().__init__()
        self.struct = struct

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.struct!r})>'

    def _check_document(self, context: Context):
        if context.kind is not self.struct.kind:
            raise ConfigurationError(
                f'cannot embed a {self.struct.kind.name.lower()} aggregate into a {context.kind} document')

    def pack(self, source, buffer=None, byte_offset=0, little_endian=None, context=None) -> Packed:
        if context is None:
            return self.struct.pack(source, buffer=buffer, byte_offset=byte_offset, little_endian=little_endian)

        self._check_document(context)

        return self.struct.pack_document(source, context, buffer=buffer, byte_offset=byte_offset,
                                         little_endian=little_endian)

    def parse(self, buffer, byte_offset=0, little_endian=None, context=None, deliver=None) -> Parsed:
        if context is None:
            return self.struct.parse(buffer, byte_offset=byte_offset, little_endian=little_endian, deliver=deliver)

        self._check_document(context)

        size = self.struct.parse_loop(buffer, context, byte_offset=byte_offset, little_endian=little_endian)

        return Parsed(None, size)
