from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, Protocol, Tuple

from .config import DEFAULT_CONFIG, GeneratorConfig
from .errors import GenerationError
from .typesys import Namespace, TypeRef, ensure_pointer, is_pointer, plain_qualifier, type_string

log = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Position:
    filename: str
    line: int
    col: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.col}"


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    name: str
    declared_type: TypeRef
    metadata: str = ""
    visible: bool = True
    embedded: bool = False
    # Whether the record's constructor takes the field.
    init: bool = True
    has_default: bool = False
    # Fields reached through an embedded base record.
    inherited: Tuple["FieldDescriptor", ...] = ()
    pos: Optional[Position] = None


@dataclasses.dataclass(frozen=True)
class RecordDescription:
    name: str
    namespace: Namespace
    fields: Tuple[FieldDescriptor, ...] = ()
    pos: Optional[Position] = None


@dataclasses.dataclass(frozen=True)
class Diagnostic:
    message: str
    pos: Optional[Position] = None
    severity: str = "warning"

    def __str__(self) -> str:
        if self.pos is None:
            return f"{self.severity}: {self.message}"
        return f"{self.pos}: {self.severity}: {self.message}"


class TypeDescriptionProvider(Protocol):
    def lookup_record(self, name: str) -> RecordDescription: ...

    def convertible(self, src: TypeRef, dst: TypeRef) -> bool: ...


@dataclasses.dataclass
class WireField:
    name: str
    wire_type: TypeRef
    metadata: str
    original: FieldDescriptor


@dataclasses.dataclass
class WireRecord:
    """The intermediate record used while encoding and decoding."""

    original_name: str
    name: str
    namespace: Namespace
    fields: List[WireField] = dataclasses.field(default_factory=list)
    # Constructor arguments without a default that never appear on the wire.
    zero_fields: List[FieldDescriptor] = dataclasses.field(default_factory=list)

    def field_by_name(self, name: str) -> Optional[WireField]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def type_string(self, typ: TypeRef) -> str:
        return type_string(typ, lambda ns: "" if ns == self.namespace else plain_qualifier(ns))


def build_wire_record(
    record: RecordDescription,
    config: GeneratorConfig = DEFAULT_CONFIG,
    diagnostics: Optional[List[Diagnostic]] = None,
) -> WireRecord:
    wire = WireRecord(
        original_name=record.name,
        name=record.name + config.wire_suffix,
        namespace=record.namespace,
    )
    hidden: List[FieldDescriptor] = []
    inherited: List[FieldDescriptor] = []
    for fd in record.fields:
        if fd.embedded:
            if fd.visible:
                diag = Diagnostic(f"({record.name}.{fd.name}) ignoring embedded field", fd.pos)
                if diagnostics is not None:
                    diagnostics.append(diag)
                log.debug("%s", diag)
            inherited.extend(fd.inherited)
            continue
        if not fd.visible:
            hidden.append(fd)
            continue
        wire.fields.append(
            WireField(name=fd.name, wire_type=ensure_pointer(fd.declared_type), metadata=fd.metadata, original=fd)
        )

    # Own fields shadow inherited ones of the same name.
    own = {fd.name for fd in record.fields if not fd.embedded}
    for fd in [f for f in inherited if f.name not in own] + hidden:
        if not fd.init or fd.has_default:
            continue
        if all(z.name != fd.name for z in wire.zero_fields):
            wire.zero_fields.append(fd)
    return wire


def _deref(typ: TypeRef) -> TypeRef:
    return typ.elem if is_pointer(typ) else typ


def load_overrides(wire: WireRecord, override: RecordDescription, oracle: TypeDescriptionProvider) -> None:
    """Set wire field types from the matching fields of the override record."""
    for of in override.fields:
        if of.embedded or not of.visible:
            raise GenerationError("field override record cannot have embedded or non-visible fields", of.pos)
        f = wire.field_by_name(of.name)
        if f is None:
            raise GenerationError(
                f"no matching field for {of.name} in original record {wire.original_name}", of.pos
            )
        src, dst = _deref(of.declared_type), _deref(f.original.declared_type)
        if not (oracle.convertible(src, dst) and oracle.convertible(dst, src)):
            raise GenerationError(
                f"field override type {wire.type_string(of.declared_type)} is not convertible to "
                f"{wire.type_string(f.original.declared_type)}",
                of.pos,
            )
        f.wire_type = ensure_pointer(of.declared_type)
        log.debug("override %s.%s: %s", wire.original_name, f.name, wire.type_string(f.wire_type))
