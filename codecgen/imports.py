from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Tuple

from .convert import zero_value
from .errors import GenerationError
from .fragments import Cast
from .model import WireRecord
from .required import DECODED, ERRORS_NS, KWARGS, PRESENT
from .typesys import TYPING, Basic, Mapping, Named, Namespace, Nullable, Opaque, Sequence, TypeRef

log = logging.getLogger(__name__)

DATACLASSES_NS = Namespace("dataclasses")
RUNTIME_NS = Namespace("codecgen.runtime")

# Namespaces referenced by every generated module, with their preferred names.
FIXED_NAMESPACES: Tuple[Tuple[Namespace, str], ...] = (
    (TYPING, "typing"),
    (DATACLASSES_NS, "dataclasses"),
    (RUNTIME_NS, "codec"),
    (ERRORS_NS, "errors"),
)

# Identifiers the generated functions bind locally.
GENERATED_IDENTIFIERS = ("x", "cls", "value", DECODED, PRESENT, KWARGS)


def walk_named_types(typ: TypeRef, callback: Callable[[Named], None]) -> None:
    """Run callback for every named type contained in typ."""
    if isinstance(typ, Basic):
        return
    if isinstance(typ, Named):
        callback(typ)
    elif isinstance(typ, Nullable):
        walk_named_types(typ.elem, callback)
    elif isinstance(typ, Sequence):
        walk_named_types(typ.elem, callback)
    elif isinstance(typ, Mapping):
        walk_named_types(typ.key, callback)
        walk_named_types(typ.value, callback)
    elif isinstance(typ, Opaque):
        raise GenerationError(f"can't walk type {typ.text}")
    else:
        raise GenerationError(f"can't walk type {typ!r}")


class NamespaceAliasTable:
    """Aliases under which foreign namespaces are imported by the generated module.

    Entries keep their registration order, which is also the order of the
    emitted import block.
    """

    def __init__(self, home: Namespace) -> None:
        self.home = home
        # Names imported unqualified from the home namespace.
        self.local_names: List[str] = []
        self._reserved: List[str] = []
        self._alias_by_path: Dict[str, str] = {}
        self._path_by_alias: Dict[str, str] = {}
        self._counter = 0

    def reserve(self, name: str) -> None:
        if name not in self._reserved:
            self._reserved.append(name)

    def reserve_local(self, name: str) -> None:
        self.reserve(name)
        if name not in self.local_names:
            self.local_names.append(name)

    def _taken(self, alias: str) -> bool:
        return alias in self._path_by_alias or alias in self._reserved

    def add(self, ns: Namespace, name: str = "") -> str:
        if ns == self.home:
            raise GenerationError(f"internal error: home namespace {ns} cannot be aliased")
        existing = self._alias_by_path.get(ns.path)
        if existing is not None:
            return existing
        alias = name or ns.name
        if self._taken(alias):
            alias = "_" + alias
            base = alias
            while self._taken(alias):
                alias = f"{base}_{self._counter}"
                self._counter += 1
            log.debug("namespace %s renamed to %s", ns.path, alias)
        self._alias_by_path[ns.path] = alias
        self._path_by_alias[alias] = ns.path
        return alias

    def alias(self, ns: Namespace) -> str:
        try:
            return self._alias_by_path[ns.path]
        except KeyError:
            raise GenerationError(f"internal error: namespace {ns} was not registered") from None

    def qualifier(self, ns: Namespace) -> str:
        if ns == self.home:
            return ""
        return self.alias(ns)

    def items(self) -> Iterator[Tuple[str, str]]:
        """(alias, path) pairs in registration order."""
        return iter([(alias, path) for path, alias in self._alias_by_path.items()])

    def __len__(self) -> int:
        return len(self._alias_by_path)


def compute_imports(wire: WireRecord) -> NamespaceAliasTable:
    """Collect every namespace the generated code refers to and assign aliases.

    Must run before any code is printed: printing asks the table for aliases.
    """
    table = NamespaceAliasTable(wire.namespace)
    named: List[Named] = []
    for f in wire.fields:
        # Field types of the wire record.
        walk_named_types(f.wire_type, named.append)
        # Field types of the original record, referenced by casts and zero values.
        walk_named_types(f.original.declared_type, named.append)
    for fd in wire.zero_fields:
        zero = zero_value(fd.declared_type)
        if isinstance(zero, Cast):
            walk_named_types(zero.target, named.append)

    table.reserve_local(wire.original_name)
    table.reserve(wire.name)
    for ident in GENERATED_IDENTIFIERS:
        table.reserve(ident)
    for typ in named:
        if typ.namespace == wire.namespace:
            table.reserve_local(typ.name)
    for ns, name in FIXED_NAMESPACES:
        table.add(ns, name)
    for typ in named:
        if typ.namespace != wire.namespace:
            table.add(typ.namespace)
    return table
