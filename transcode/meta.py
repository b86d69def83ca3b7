import logging
from enum import Enum, auto


class AggregateKind(Enum):
    '''The shape of the document produced by an aggregate.'''
    NAMED      = auto()
    POSITIONAL = auto()


class FieldBase(object):

    def contribute_to_map(self, cls, name):
        if name in cls._meta.fields:
            logging.getLogger(__name__).debug("field '%s' of %s overridden", name, cls.__name__)

        cls._meta.fields[name] = self


class Meta(object):
    """Class containing metadata about the abstraction"""

    def __init__(self):
        self.fields = {}


class MetaMap(type):
    '''Collects the fields declared as class attributes, in declaration order.

    It makes possible to define a named aggregate like

        class Header(BinaryMap):
            kind   = Uint8
            length = Uint16

    The fields are removed from the class namespace and stored in ``_meta``,
    subclasses inherit the fields of their parents (that come first).
    '''

    def __new__(cls, names, bases, attrs):
        new_attrs = {
            _k: _v for _k, _v in attrs.items() if not isinstance(_v, FieldBase)
        }
        new_cls = super(MetaMap, cls).__new__(cls, names, bases, new_attrs)

        new_cls._meta = Meta()

        # handle inheritance
        parents = [_ for _ in bases if isinstance(_, MetaMap)]
        for parent in parents:
            new_cls._meta.fields.update(parent._meta.fields)

        for obj_name, obj in attrs.items():
            new_cls.add_to_class(obj_name, obj)

        return new_cls

    def add_to_class(cls, name, value):
        if isinstance(value, FieldBase):
            value.contribute_to_map(cls, name)
