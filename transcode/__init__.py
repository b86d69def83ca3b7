"""
# Transcode: declarative binary structures.

A format is described as a tree of fields: fixed width numbers and text,
padding, raw bytes, named (BinaryMap) and positional (BinaryArray)
aggregates, repetitions (Repeat), unions selected by a discriminant (Branch)
and aggregates flattened into their parent (Embed).

Two operations are defined for every field:

 1. pack(): encode a document (dicts, lists, numbers, strings and bytes)
    into a buffer.

 2. parse(): read a buffer and build the equivalent document.

Fields are not limited to whole bytes, a 3-bit field followed by a 5-bit one
takes a single byte.

While packing/parsing, the aggregates expose the document being built to
their children (see properties.Context) so that the size of a field, the
number of repetitions or the choice of a Branch can depend on values already
decoded.
"""
