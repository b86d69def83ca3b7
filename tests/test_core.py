from types import SimpleNamespace

import pytest

from transcode.constants import Int16, Uint8, Uint16
from transcode.core import (
    OBJECT_TRANSCODERS,
    BinaryArray,
    BinaryMap,
    Embed,
    Repeat,
    concat_buffers,
)
from transcode.exceptions import (
    AlignmentError,
    ConfigurationError,
    InsufficientDataError,
    MissingFieldError,
    OverrunError,
    SerializationError,
)
from transcode.fields import Bits, Branch, ByteBuffer, Packed, Padding, Uint, Utf8
from transcode.meta import AggregateKind
from transcode.properties import Dependency


def test_bit_packing():
    """Check that fields not multiple of a byte are packed one after the other."""
    struct = BinaryMap([('a', Bits(3)), ('b', Bits(5))])

    packed = struct.pack({'a': 0b101, 'b': 0b00011})

    assert packed.size == 1
    assert packed.buffer == b'\xa3'

    struct = BinaryMap([('a', Bits(3)), ('b', Bits(13))])

    packed = struct.pack({'a': 0b101, 'b': 0x1234})

    assert packed.size == 2
    assert packed.buffer == b'\xb2\x34'
    assert struct.parse(packed.buffer).data == {'a': 0b101, 'b': 0x1234}


def test_shared_buffer_and_fragments_agree():
    struct = BinaryMap([
        ('a', Bits(3)),
        ('b', BinaryArray(Bits(7), Uint16)),
        ('c', Bits(6)),
        ('d', Utf8(16)),
    ])
    value = {'a': 3, 'b': [0x55, 0xbeef], 'c': 0x2a, 'd': 'ok'}

    fragments = struct.pack(value)

    buffer = bytearray(fragments.size + 1)
    shared = struct.pack(value, buffer=buffer, byte_offset=1)

    assert fragments.size == shared.size == 6
    assert shared.buffer is buffer
    assert buffer[1:] == fragments.buffer
    assert struct.parse(buffer, byte_offset=1).data == value


def test_binary_map():
    struct = BinaryMap([
        ('type', Uint8),
        ('length', Uint16),
    ])

    packed = struct.pack({'type': 1, 'length': 0x0203})

    assert packed.size == 3
    assert packed.buffer == b'\x01\x02\x03'

    parsed = struct.parse(packed.buffer)

    assert parsed.size == 3
    assert parsed.data == {'type': 1, 'length': 0x0203}
    assert list(parsed.data) == ['type', 'length']


def test_binary_map_missing_field():
    struct = BinaryMap([
        ('header', BinaryMap([('a', Uint8), ('b', Uint8)])),
    ])

    with pytest.raises(MissingFieldError) as e:
        struct.pack({'header': {'a': 1}})

    assert e.value.chain == ['b', 'header']
    assert e.value.path == 'header.b'
    assert str(e.value).startswith('header.b: ')


def test_binary_map_endianness_is_inherited():
    struct = BinaryMap([
        ('a', Uint16),
        ('inner', BinaryMap([('b', Uint16)])),
        ('c', Uint(16, little_endian=False)),
    ], little_endian=True)

    packed = struct.pack({'a': 1, 'inner': {'b': 2}, 'c': 3})

    assert packed.buffer == b'\x01\x00\x02\x00\x00\x03'


def test_binary_map_decode_receives_a_plain_document():
    received = []

    def decode(document, context):
        received.append((document, context))
        return document

    struct = BinaryMap([('a', Uint8)], decode=decode)

    parsed = struct.parse(b'\x07')

    assert parsed.data == {'a': 7}
    assert type(parsed.data) is dict
    assert received == [({'a': 7}, None)]


def test_binary_map_with_padding():
    struct = BinaryMap([
        ('a', Bits(4)),
        ('reserved', Padding(4)),
        ('b', Uint8),
    ])

    parsed = struct.parse(b'\xaf\x07')

    assert parsed.size == 2
    assert parsed.data == {'a': 0xa, 'b': 7}
    assert struct.pack(parsed.data).buffer == b'\xa0\x07'


def test_binary_map_object_transcoders():
    struct = BinaryMap([('a', Uint8), ('b', Uint8)], **OBJECT_TRANSCODERS)

    packed = struct.pack(SimpleNamespace(a=1, b=2))

    assert packed.buffer == b'\x01\x02'
    assert struct.parse(packed.buffer).data == SimpleNamespace(a=1, b=2)


def test_binary_map_as_mapping():
    struct = BinaryMap([('a', Uint8)])
    struct['b'] = Uint16

    assert list(struct) == ['a', 'b']
    assert len(struct) == 2
    assert 'b' in struct
    assert struct['b'] is Uint16
    assert struct.get_fields() == [('a', Uint8), ('b', Uint16)]
    assert struct.pack({'a': 1, 'b': 2}).buffer == b'\x01\x00\x02'


def test_declarative_binary_map():
    class Base(BinaryMap):
        kind = Uint8

    class Derived(Base):
        length = Uint16

    assert list(Base()) == ['kind']
    assert list(Derived()) == ['kind', 'length']
    # the field doesn't shadow the attributes of the class
    assert Derived.kind is AggregateKind.NAMED

    assert Derived().parse(b'\x01\x00\x02').data == {'kind': 1, 'length': 2}


def test_binary_array():
    struct = BinaryArray(Uint8, Uint16)

    packed = struct.pack([1, 2])

    assert packed.size == 3
    assert packed.buffer == b'\x01\x00\x02'

    parsed = struct.parse(packed.buffer)

    assert parsed.data == [1, 2]
    assert parsed.size == 3

    with pytest.raises(InsufficientDataError) as e:
        struct.pack([1])

    assert e.value.path == '[1]'


def test_binary_array_as_list():
    struct = BinaryArray(Uint8)
    struct.append(Int16)

    assert len(struct) == 2
    assert struct[1] is Int16
    assert list(struct) == [Uint8, Int16]
    assert struct.parse(b'\x01\xff\xff').data == [1, -1]


def test_repeat_count():
    struct = Repeat(Uint8, count=3)

    packed = struct.pack([1, 2, 3])

    assert packed.size == 3
    assert packed.buffer == b'\x01\x02\x03'
    assert struct.parse(packed.buffer).data == [1, 2, 3]

    with pytest.raises(InsufficientDataError):
        struct.pack([1, 2])


def test_repeat_more_fields_per_pass():
    struct = Repeat(Uint8, Uint16, count=2)

    packed = struct.pack([1, 2, 3, 4])

    assert packed.buffer == b'\x01\x00\x02\x03\x00\x04'
    assert struct.parse(packed.buffer).data == [1, 2, 3, 4]


def test_repeat_bytes():
    struct = Repeat(Uint16, bytes=4)

    packed = struct.pack([1, 2])

    assert packed.size == 4
    assert packed.buffer == b'\x00\x01\x00\x02'
    assert struct.parse(b'\x00\x01\x00\x02\xff').data == [1, 2]

    with pytest.raises(OverrunError):
        struct.pack([1, 2, 3])

    with pytest.raises(InsufficientDataError):
        struct.pack([1])


def test_repeat_bytes_overrun():
    """A pass crossing the limit is refused, never truncated."""
    struct = Repeat(Uint16, Uint8, bytes=4)

    with pytest.raises(OverrunError):
        struct.pack([1, 2, 3, 4])

    with pytest.raises(OverrunError):
        struct.parse(b'\x00\x01\x02\x00\x03\x04')

    with pytest.raises(OverrunError):
        Repeat(Uint16, bytes=3).parse(b'\x00\x01\x00\x02')


def test_repeat_needs_a_policy():
    with pytest.raises(ConfigurationError):
        Repeat(Uint8)


def test_repeat_zero_sized_pass():
    with pytest.raises(ConfigurationError):
        Repeat(Padding(0), bytes=2).parse(b'\x00\x00')


def test_repeat_fractional_count():
    repeat = Repeat(Uint8, count=2.5)

    with pytest.raises(ConfigurationError):
        repeat.pack([1, 2, 3])

    with pytest.raises(ConfigurationError):
        repeat.parse(b'\x01\x02\x03')


def test_byte_buffer_after_bit_field():
    struct = BinaryMap([('a', Bits(4)), ('b', ByteBuffer(1)), ('c', Bits(4))])
    value = {'a': 1, 'b': b'\xff', 'c': 2}

    with pytest.raises(AlignmentError) as excinfo:
        struct.pack(value)

    assert excinfo.value.path == 'b'

    with pytest.raises(AlignmentError) as excinfo:
        struct.pack(value, buffer=bytearray(2))

    assert excinfo.value.path == 'b'

    with pytest.raises(AlignmentError):
        struct.parse(b'\x1f\xf2')


def test_byte_buffer_after_nested_bit_field():
    struct = BinaryMap([
        ('flags', BinaryArray(Bits(4))),
        ('body', BinaryMap([('data', ByteBuffer(1))])),
    ])

    with pytest.raises(AlignmentError) as excinfo:
        struct.pack({'flags': [1], 'body': {'data': b'\xff'}})

    assert excinfo.value.path == 'body.data'


def test_byte_buffer_rejects_non_bytes_with_path():
    struct = BinaryMap([('data', ByteBuffer(4))])

    with pytest.raises(SerializationError) as excinfo:
        struct.pack({'data': None})

    assert excinfo.value.path == 'data'


def test_repeat_count_from_sibling():
    struct = BinaryMap([
        ('n', Uint8),
        ('items', Repeat(Uint8, count=Dependency('.n'))),
        ('size', Uint8),
        ('data', Repeat(Uint16, bytes=lambda context: context['size'])),
    ])
    value = {'n': 2, 'items': [5, 6], 'size': 4, 'data': [7, 8]}

    packed = struct.pack(value)

    assert packed.buffer == b'\x02\x05\x06\x04\x00\x07\x00\x08'

    parsed = struct.parse(packed.buffer)

    assert parsed.data == value
    assert parsed.size == 8


def test_repeat_error_path():
    struct = BinaryMap([
        ('items', Repeat(BinaryMap([('a', Uint8)]), count=2)),
    ])

    with pytest.raises(MissingFieldError) as e:
        struct.pack({'items': [{'a': 1}, {}]})

    assert e.value.path == 'items[1][0].a'


def test_context_visibility():
    """A field reads the value already decoded two levels above it."""
    seen = []

    def length(context):
        seen.append(context.parent.parent['n'])
        return context.parent.parent['n']

    struct = BinaryMap([
        ('n', Uint8),
        ('body', BinaryMap([
            ('inner', BinaryMap([
                ('data', ByteBuffer(length)),
                ('more', ByteBuffer(Dependency('...n'))),
            ])),
        ])),
    ])

    parsed = struct.parse(b'\x02abcd')

    assert parsed.data == {'n': 2, 'body': {'inner': {'data': b'ab', 'more': b'cd'}}}
    assert seen == [2]

    assert struct.pack(parsed.data).buffer == b'\x02abcd'
    assert seen == [2, 2]


def test_branch_on_sibling():
    struct = BinaryMap([
        ('type', Uint8),
        ('value', Branch(
            chooser=Dependency('.type'),
            choices={
                0: Uint8,
                1: Uint16,
            },
        )),
    ])

    parsed = struct.parse(b'\x01\x00\x01')

    assert parsed.data == {'type': 1, 'value': 1}
    assert parsed.size == 3

    assert struct.pack({'type': 0, 'value': 9}).buffer == b'\x00\x09'


def test_embed_binary_map():
    inner = BinaryMap([('a', Uint8), ('b', Uint8)])
    struct = BinaryMap([('c', Uint8), ('inner', Embed(inner))])

    parsed = struct.parse(b'\x01\x02\x03')

    assert parsed.data == {'c': 1, 'a': 2, 'b': 3}
    assert list(parsed.data) == ['c', 'a', 'b']
    assert parsed.size == 3

    packed = struct.pack({'c': 1, 'a': 2, 'b': 3})

    assert packed.size == 3
    assert packed.buffer == b'\x01\x02\x03'


def test_embedded_fields_see_their_new_siblings():
    inner = BinaryMap([('data', ByteBuffer(Dependency('.length')))])
    struct = BinaryMap([('length', Uint8), ('payload', Embed(inner))])

    parsed = struct.parse(b'\x02xy')

    assert parsed.data == {'length': 2, 'data': b'xy'}
    assert struct.pack(parsed.data).buffer == b'\x02xy'


def test_embed_binary_array():
    struct = BinaryArray(Uint8, Embed(BinaryArray(Uint8, Uint16)), Uint8)

    packed = struct.pack([1, 2, 3, 4])

    assert packed.buffer == b'\x01\x02\x00\x03\x04'
    assert struct.parse(packed.buffer).data == [1, 2, 3, 4]


def test_embed_standalone():
    embed = Embed(BinaryMap([('a', Uint8), ('b', Uint8)]))

    assert embed.pack({'a': 1, 'b': 2}).buffer == b'\x01\x02'
    assert embed.parse(b'\x01\x02').data == {'a': 1, 'b': 2}


def test_embed_errors():
    with pytest.raises(ConfigurationError):
        Embed(Uint8)

    struct = BinaryArray(Embed(BinaryMap([('a', Uint8)])))

    with pytest.raises(ConfigurationError):
        struct.parse(b'\x01')


def test_concat_buffers():
    fragments = [
        Packed(bytearray(b'\xa0'), 0.375),
        Packed(bytearray(b'\x18'), 0.625),
        Packed(bytearray(b'\xff\xee'), 2),
        Packed(bytearray(b'\xab\xc0'), 1.5),
        Packed(bytearray(b'\xd0'), 0.5),
    ]

    assert concat_buffers(fragments, 5) == b'\xa3\xff\xee\xab\xcd'
