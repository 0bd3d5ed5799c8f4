from __future__ import annotations

from .fragments import Attr, Cast, Const, Deref, Expr, Name, Ref
from .model import WireField
from .typesys import Basic, Mapping, Named, Nullable, Sequence, TypeRef, assignable, is_pointer

_SCALAR_ZERO = {"str": "", "int": 0, "float": 0.0, "bool": False, "bytes": b""}
_CONTAINER_ZERO = {"list": list, "tuple": tuple, "set": set, "frozenset": frozenset}


def conversion_expr(value: Expr, src: TypeRef, dst: TypeRef) -> Expr:
    if is_pointer(src) and not is_pointer(dst):
        value = Deref(value)
        src = src.elem
    elif not is_pointer(src) and is_pointer(dst):
        value = Ref(value)
        src = Nullable(src)
    if assignable(src, dst):
        return value
    return Cast(dst, value)


def convert(field: WireField, variable: str) -> Expr:
    """Original record field -> wire field, used when encoding."""
    expr = Attr(Name(variable), field.name)
    return conversion_expr(expr, field.original.declared_type, field.wire_type)


def convert_back(field: WireField, variable: str) -> Expr:
    """Wire field -> original record field, used when decoding."""
    expr = Attr(Name(variable), field.name)
    return conversion_expr(expr, field.wire_type, field.original.declared_type)


def zero_value(typ: TypeRef) -> Expr:
    if isinstance(typ, Basic):
        return Const(_SCALAR_ZERO.get(typ.name))
    if isinstance(typ, Sequence):
        return Const(_CONTAINER_ZERO[typ.container]())
    if isinstance(typ, Mapping):
        return Const({})
    # Enum members need not include the scalar zero.
    if isinstance(typ, Named) and typ.underlying is not None and not (typ.is_record or typ.is_enum):
        inner = zero_value(typ.underlying)
        if isinstance(inner, Const) and inner.value is not None:
            return Cast(typ, inner)
    return Const(None)
