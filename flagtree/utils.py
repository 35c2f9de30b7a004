"""
Flagtree utilities shared by the flag, command and parser layers.

Contents
- Unset: "argument not given" marker for keyword defaults where None is a
  meaningful value (a flag without a short name, a command without handler).
- coalesce(): turn Unset into a default while keeping None, 0 and "" intact.
- rename(): decorator giving generated functions a readable name in tracebacks.
- mirror(): read-only property over a "_name" attribute; containers come back
  frozen so descriptors cannot be edited once built.
- ordinal(): "first", "second", ..., "11th", for position-first diagnostics.
- DescriptorType: metaclass shared by Flag, FlagGroup and Command; turns the
  names in __introspectable__ into read-only mirror() properties and derives
  __typename__, __repr__ and __rich_repr__ from them.

    >>> coalesce(Unset, "options")
    'options'
    >>> coalesce(None, "options") is None
    True
    >>> ordinal(12)
    '12th'
"""
import builtins
import functools
import re
from collections.abc import Sequence, Mapping, Set
from types import MappingProxyType
from typing import final


@final
class UnsetType:
    """
    Type of the Unset marker.

    There is exactly one instance. It is falsey, prints as "Unset", survives
    copy/deepcopy/pickle as itself and cannot be subclassed. It also combines
    with types in unions, so `isinstance(x, str | Unset)` reads naturally.
    """

    def __or__(self, other, /):
        try:
            return type(self) | other
        except TypeError:
            return NotImplemented

    def __ror__(self, other, /):
        try:
            return other | type(self)
        except TypeError:
            return NotImplemented

    @functools.cache
    def __new__(cls):
        return super().__new__(cls)

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo, /):
        return self

    def __reduce__(self):
        return "Unset"

    def __init_subclass__(cls, **options):
        raise TypeError("type 'UnsetType' is not an acceptable base type")


Unset = UnsetType()


def coalesce(object, default=None, /):
    """
    Return `default` when object is Unset, else object unchanged.
    """
    return object if object is not Unset else default


def rename(name, /):
    """
    Decorator: set __name__ and __qualname__ of the decorated function to `name`.

    Used for the accessors and dunders built inside metaclasses, which would
    otherwise all show up as "getter" or "__repr__" of the metaclass.
    """
    if not isinstance(name, str):
        raise TypeError("rename() argument must be a string")

    def decorator(function):
        if not builtins.callable(function):
            raise TypeError("rename() must decorate a callable")
        function.__name__ = function.__qualname__ = name
        return function

    return decorator


def _freeze(object):
    # list/tuple -> tuple, dict -> read-only proxy of a copy, set -> frozenset
    if isinstance(object, Sequence) and not isinstance(object, (str, bytes, bytearray)):
        return tuple(object)
    elif isinstance(object, Mapping):
        return MappingProxyType(dict(object))
    elif isinstance(object, Set):
        return frozenset(object)
    return object


def mirror(name, /):
    """
    Build a read-only property returning a frozen view of self._<name>.

        class Command:
            flags = mirror("flags")   # reads self._flags, returns a tuple
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")

    @rename(name)
    def getter(self):
        return _freeze(getattr(self, "_" + name))

    return property(getter)


_WORDS = (
    "first", "second", "third", "fourth", "fifth",
    "sixth", "seventh", "eighth", "ninth", "tenth",
)


@functools.cache
def ordinal(number, /):
    """
    Ordinal label of a 1-based token position.

    Positions up to ten are spelled out ("third position"); later ones use a
    numeric suffix ("11th", "21st", "112th").
    """
    if 1 <= number <= len(_WORDS):
        return _WORDS[number - 1]
    if 10 < number % 100 < 20:
        return f"{number}th"
    return "%d%s" % (number, {1: "st", 2: "nd", 3: "rd"}.get(number % 10, "th"))


class DescriptorType(type):
    """
    Metaclass for immutable, introspectable descriptors.

    - every name in __introspectable__ becomes a read-only property over "_<name>".
    - __typename__ is the class name in lower case with hyphens ("FlagGroup" → "flag-group").
    - __displayable__ (when set) narrows the fields shown by __repr__/__rich_repr__.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return f"{type(self).__typename__}({', '.join('%s=%r' % pair for pair in self.__rich_repr__())})"
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


__all__ = (
    "UnsetType",
    "Unset",
    "coalesce",
    "rename",
    "mirror",
    "ordinal",
    "DescriptorType",
)
