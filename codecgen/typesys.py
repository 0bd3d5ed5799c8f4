"""Host type model.

Types are small immutable values produced by the loader. Named types compare by
(namespace path, name) so two references to the same class are identical no
matter where they were resolved from.
"""

from __future__ import annotations

import dataclasses
from typing import Callable, Optional

SCALAR_NAMES = frozenset({"str", "int", "float", "bool", "bytes"})
NUMERIC_NAMES = frozenset({"int", "float"})
TOP_NAMES = frozenset({"object", "Any"})
CONTAINERS = ("list", "tuple", "set", "frozenset")


@dataclasses.dataclass(frozen=True)
class Namespace:
    path: str

    @property
    def name(self) -> str:
        return self.path.rsplit(".", 1)[-1]

    def __str__(self) -> str:
        return self.path


TYPING = Namespace("typing")


class TypeRef:
    pass


@dataclasses.dataclass(frozen=True)
class Basic(TypeRef):
    name: str


@dataclasses.dataclass(frozen=True)
class Named(TypeRef):
    namespace: Namespace
    name: str
    # None means the type is opaque: only identical to itself.
    underlying: Optional[TypeRef] = dataclasses.field(default=None, compare=False, repr=False)
    is_record: bool = dataclasses.field(default=False, compare=False)
    is_enum: bool = dataclasses.field(default=False, compare=False)


@dataclasses.dataclass(frozen=True)
class Nullable(TypeRef):
    elem: TypeRef


@dataclasses.dataclass(frozen=True)
class Sequence(TypeRef):
    elem: TypeRef
    container: str = "list"


@dataclasses.dataclass(frozen=True)
class Mapping(TypeRef):
    key: TypeRef
    value: TypeRef


@dataclasses.dataclass(frozen=True)
class Opaque(TypeRef):
    text: str


Qualifier = Callable[[Namespace], str]


def is_pointer(typ: TypeRef) -> bool:
    return isinstance(typ, Nullable)


def ensure_pointer(typ: TypeRef) -> TypeRef:
    if is_pointer(typ):
        return typ
    return Nullable(typ)


def underlying(typ: TypeRef) -> TypeRef:
    seen = set()
    while isinstance(typ, Named) and typ.underlying is not None and typ not in seen:
        seen.add(typ)
        typ = typ.underlying
    return typ


def identical(a: TypeRef, b: TypeRef) -> bool:
    return a == b


def assignable(src: TypeRef, dst: TypeRef) -> bool:
    """Whether a value of src can be stored as dst without any conversion."""
    if identical(src, dst):
        return True
    return isinstance(dst, Basic) and dst.name in TOP_NAMES


def convertible(src: TypeRef, dst: TypeRef) -> bool:
    """Whether an explicit conversion dst(value) turns src into dst."""
    if assignable(src, dst):
        return True
    if is_pointer(src) and is_pointer(dst):
        return convertible(src.elem, dst.elem)
    usrc, udst = underlying(src), underlying(dst)
    if identical(usrc, udst):
        return True
    if isinstance(usrc, Basic) and isinstance(udst, Basic):
        return usrc.name in NUMERIC_NAMES and udst.name in NUMERIC_NAMES
    return False


def type_string(typ: TypeRef, qualifier: Qualifier) -> str:
    def qualified(ns: Namespace, name: str) -> str:
        prefix = qualifier(ns)
        return f"{prefix}.{name}" if prefix else name

    if isinstance(typ, Basic):
        if typ.name == "Any":
            return qualified(TYPING, "Any")
        return typ.name
    if isinstance(typ, Named):
        return qualified(typ.namespace, typ.name)
    if isinstance(typ, Nullable):
        return qualified(TYPING, "Optional") + f"[{type_string(typ.elem, qualifier)}]"
    if isinstance(typ, Sequence):
        elem = type_string(typ.elem, qualifier)
        if typ.container == "tuple":
            return f"tuple[{elem}, ...]"
        return f"{typ.container}[{elem}]"
    if isinstance(typ, Mapping):
        return f"dict[{type_string(typ.key, qualifier)}, {type_string(typ.value, qualifier)}]"
    if isinstance(typ, Opaque):
        return typ.text
    raise TypeError(f"unknown type {typ!r}")


def constructor_string(typ: TypeRef, qualifier: Qualifier) -> str:
    """The callable that converts a value to typ."""
    if isinstance(typ, Sequence):
        return typ.container
    if isinstance(typ, Mapping):
        return "dict"
    if isinstance(typ, Nullable):
        return constructor_string(typ.elem, qualifier)
    return type_string(typ, qualifier)


def plain_qualifier(ns: Namespace) -> str:
    return ns.name
