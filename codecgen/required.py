from __future__ import annotations

from typing import List

from . import tags
from .config import Format
from .convert import convert_back, zero_value
from .fragments import (
    Assign,
    Attr,
    Call,
    Const,
    If,
    IsNotNone,
    Name,
    NotIn,
    QualifiedName,
    Raise,
    Stmt,
    Subscript,
)
from .model import WireRecord
from .typesys import Namespace

ERRORS_NS = Namespace("codecgen.errors")

DECODED = "dec"
PRESENT = "present"
KWARGS = "kw"


def unmarshal_conversions(wire: WireRecord, fmt: Format) -> List[Stmt]:
    """Presence checks and conversions from the decoded wire value into constructor kwargs.

    A required field fails only when its key is absent. A present null falls
    back to the record default or, without one, to the zero value.
    """
    stmts: List[Stmt] = []
    context = f"{fmt.label} {wire.original_name}"
    for f in wire.fields:
        target = Subscript(Name(KWARGS), Const(f.name))
        if not tags.is_optional(f.metadata, fmt.key):
            missing = Call(
                QualifiedName(ERRORS_NS, "MissingFieldError"),
                (Const(tags.encoded_name(f.metadata, fmt.key, f.name)), Const(context)),
            )
            stmts.append(If(NotIn(Const(f.name), Name(PRESENT)), (Raise(missing),)))
        orelse = ()
        if not f.original.has_default:
            orelse = (Assign(target, zero_value(f.original.declared_type)),)
        assign = Assign(target, convert_back(f, DECODED))
        stmts.append(If(IsNotNone(Attr(Name(DECODED), f.name)), (assign,), orelse))
    for fd in wire.zero_fields:
        stmts.append(Assign(Subscript(Name(KWARGS), Const(fd.name)), zero_value(fd.declared_type)))
    return stmts
