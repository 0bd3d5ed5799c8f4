"""Type descriptions read from Python sources.

Every ``*.py`` file of a directory is parsed with :mod:`ast`; nothing is
imported or executed. Annotations are resolved against each module's imports
and top-level definitions into :mod:`codecgen.typesys` values.
"""

from __future__ import annotations

import ast
import dataclasses
import logging
import pathlib
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Union

from . import typesys
from .config import METADATA_KEY
from .errors import GenerationError
from .model import FieldDescriptor, Position, RecordDescription
from .typesys import Basic, Mapping, Named, Namespace, Nullable, Opaque, Sequence, TypeRef

log = logging.getLogger(__name__)

BUILTIN_NAMES = frozenset({"str", "int", "float", "bool", "bytes", "object", "list", "tuple", "set", "frozenset", "dict", "None"})

OPTIONAL_NAMES = frozenset({"typing.Optional"})
UNION_NAMES = frozenset({"typing.Union"})
ANNOTATED_NAMES = frozenset({"typing.Annotated", "typing_extensions.Annotated"})
CLASSVAR_NAMES = frozenset({"typing.ClassVar"})
INITVAR_NAMES = frozenset({"dataclasses.InitVar"})
ENUM_NAMES = frozenset({"enum.Enum", "enum.IntEnum", "enum.StrEnum", "enum.Flag", "enum.IntFlag"})
LIST_NAMES = frozenset(
    {"list", "typing.List", "typing.Sequence", "typing.MutableSequence", "collections.abc.Sequence", "collections.abc.MutableSequence"}
)
TUPLE_NAMES = frozenset({"tuple", "typing.Tuple"})
SET_NAMES = frozenset({"set", "typing.Set", "typing.AbstractSet", "typing.MutableSet", "collections.abc.Set", "collections.abc.MutableSet"})
FROZENSET_NAMES = frozenset({"frozenset", "typing.FrozenSet"})
DICT_NAMES = frozenset(
    {"dict", "typing.Dict", "typing.Mapping", "typing.MutableMapping", "collections.abc.Mapping", "collections.abc.MutableMapping"}
)
FIELD_NAMES = frozenset({"dataclasses.field"})


@dataclasses.dataclass
class ModuleRef:
    path: str


@dataclasses.dataclass
class ImportedName:
    module: str
    name: str


@dataclasses.dataclass
class ClassSym:
    node: ast.ClassDef


@dataclasses.dataclass
class NewTypeSym:
    base: ast.expr


@dataclasses.dataclass
class AliasSym:
    value: ast.expr


Symbol = Union[ModuleRef, ImportedName, ClassSym, NewTypeSym, AliasSym]


@dataclasses.dataclass
class Module:
    path: str
    package: str
    filename: str
    tree: ast.Module
    symbols: Dict[str, Symbol] = dataclasses.field(default_factory=dict)

    @property
    def namespace(self) -> Namespace:
        return Namespace(self.path)

    def pos(self, node: ast.AST) -> Position:
        return Position(self.filename, getattr(node, "lineno", 0), getattr(node, "col_offset", -1) + 1)


def package_prefix(directory: pathlib.Path) -> List[str]:
    parts: List[str] = []
    d = directory.resolve()
    while (d / "__init__.py").exists():
        parts.insert(0, d.name)
        d = d.parent
    return parts


def resolve_relative(module: Optional[str], level: int, package: str) -> str:
    if level == 0:
        return module or ""
    parts = package.split(".") if package else []
    if level > 1:
        parts = parts[: max(len(parts) - (level - 1), 0)]
    base = ".".join(parts)
    if module:
        return f"{base}.{module}" if base else module
    return base


def _collect_symbols(mod: Module, body: List[ast.stmt]) -> None:
    for stmt in body:
        if isinstance(stmt, ast.Import):
            for alias in stmt.names:
                if alias.asname:
                    mod.symbols[alias.asname] = ModuleRef(alias.name)
                else:
                    top = alias.name.split(".", 1)[0]
                    mod.symbols[top] = ModuleRef(top)
        elif isinstance(stmt, ast.ImportFrom):
            source = resolve_relative(stmt.module, stmt.level, mod.package)
            for alias in stmt.names:
                if alias.name != "*":
                    mod.symbols[alias.asname or alias.name] = ImportedName(source, alias.name)
        elif isinstance(stmt, ast.ClassDef):
            mod.symbols[stmt.name] = ClassSym(stmt)
        elif isinstance(stmt, ast.Assign) and len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name):
            name = stmt.targets[0].id
            value = stmt.value
            if isinstance(value, ast.Call) and len(value.args) == 2:
                mod.symbols[name] = NewTypeSym(value.args[1]) if _maybe_newtype(value) else AliasSym(value)
            elif isinstance(value, (ast.Subscript, ast.BinOp)):
                mod.symbols[name] = AliasSym(value)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name) and stmt.value is not None:
            mod.symbols[stmt.target.id] = AliasSym(stmt.value)
        elif isinstance(stmt, ast.If):
            _collect_symbols(mod, stmt.body)
            _collect_symbols(mod, stmt.orelse)


def _maybe_newtype(call: ast.Call) -> bool:
    func = call.func
    name = func.attr if isinstance(func, ast.Attribute) else getattr(func, "id", "")
    return name == "NewType"


def _subscript_args(node: ast.expr) -> List[ast.expr]:
    if isinstance(node, ast.Tuple):
        return list(node.elts)
    return [node]


def _union_members(node: ast.expr) -> List[ast.expr]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _union_members(node.left) + _union_members(node.right)
    return [node]


def _is_none(node: ast.expr) -> bool:
    return (isinstance(node, ast.Constant) and node.value is None) or (isinstance(node, ast.Name) and node.id == "None")


class SourceLoader:
    """Provides record descriptions for the dataclasses of one source directory."""

    def __init__(self, modules: Dict[str, Module]) -> None:
        self.modules = modules
        self._resolving: Set[Tuple[str, str]] = set()

    # Provider interface -------------------------------------------------

    def lookup_record(self, name: str) -> RecordDescription:
        found = [m for m in self.modules.values() if isinstance(m.symbols.get(name), ClassSym)]
        if not found:
            if any(name in m.symbols for m in self.modules.values()):
                raise GenerationError("not a class")
            raise GenerationError("no such identifier")
        if len(found) > 1:
            where = ", ".join(m.path for m in found)
            raise GenerationError(f"defined in multiple modules: {where}")

        mod = found[0]
        node = mod.symbols[name].node
        if not self._is_dataclass(mod, node):
            raise GenerationError("not a record type (missing @dataclass)", mod.pos(node))

        fields = self._describe_fields(mod, node, frozenset({(mod.path, name)}))
        log.debug("record %s.%s: %d fields", mod.path, name, len(fields))
        return RecordDescription(name=name, namespace=mod.namespace, fields=tuple(fields), pos=mod.pos(node))

    def _describe_fields(
        self, mod: Module, node: ast.ClassDef, seen: FrozenSet[Tuple[str, str]]
    ) -> List[FieldDescriptor]:
        fields: List[FieldDescriptor] = []
        for base in node.bases:
            typ = self.resolve(mod, base)
            if isinstance(typ, Named) and typ.is_record:
                fields.append(
                    FieldDescriptor(
                        name=typ.name,
                        declared_type=typ,
                        visible=not typ.name.startswith("_"),
                        embedded=True,
                        inherited=self._inherited_fields(typ, seen),
                        pos=mod.pos(base),
                    )
                )
        for stmt in node.body:
            if not isinstance(stmt, ast.AnnAssign) or not isinstance(stmt.target, ast.Name):
                continue
            key = self._key(mod, stmt.annotation)
            if key in CLASSVAR_NAMES:
                continue
            fname = stmt.target.id
            metadata, init, has_default = self._field_options(mod, stmt)
            annotation = stmt.annotation
            if key in INITVAR_NAMES and isinstance(annotation, ast.Subscript):
                # Constructor-only argument, never stored on the record.
                annotation = annotation.slice
                init = False
            fields.append(
                FieldDescriptor(
                    name=fname,
                    declared_type=self.resolve(mod, annotation),
                    metadata=metadata,
                    visible=init and not fname.startswith("_"),
                    init=init or key in INITVAR_NAMES,
                    has_default=has_default,
                    pos=mod.pos(stmt),
                )
            )
        return fields

    def _inherited_fields(self, base: Named, seen: FrozenSet[Tuple[str, str]]) -> Tuple[FieldDescriptor, ...]:
        """Fields a record inherits from base, flattened through base's own bases."""
        marker = (base.namespace.path, base.name)
        mod = self.modules.get(base.namespace.path)
        sym = mod.symbols.get(base.name) if mod is not None else None
        if not isinstance(sym, ClassSym) or marker in seen:
            return ()
        out: List[FieldDescriptor] = []
        for fd in self._describe_fields(mod, sym.node, seen | {marker}):
            out.extend(fd.inherited if fd.embedded else (fd,))
        return tuple(out)

    def convertible(self, src: TypeRef, dst: TypeRef) -> bool:
        return typesys.convertible(src, dst)

    # Name resolution ----------------------------------------------------

    def _module_of(self, mod: Module, node: ast.expr) -> Optional[str]:
        if isinstance(node, ast.Name):
            sym = mod.symbols.get(node.id)
            if isinstance(sym, ModuleRef):
                return sym.path
            if isinstance(sym, ImportedName):
                return f"{sym.module}.{sym.name}" if sym.module else sym.name
            return None
        if isinstance(node, ast.Attribute):
            base = self._module_of(mod, node.value)
            return f"{base}.{node.attr}" if base else None
        return None

    def _qualify(self, mod: Module, node: ast.expr) -> Optional[Tuple[str, str]]:
        if isinstance(node, ast.Subscript):
            return self._qualify(mod, node.value)
        if isinstance(node, ast.Name):
            sym = mod.symbols.get(node.id)
            if sym is None:
                return ("", node.id) if node.id in BUILTIN_NAMES else None
            if isinstance(sym, ImportedName):
                return sym.module, sym.name
            if isinstance(sym, ModuleRef):
                return None
            return mod.path, node.id
        if isinstance(node, ast.Attribute):
            base = self._module_of(mod, node.value)
            if base is None:
                return None
            return base, node.attr
        return None

    def _key(self, mod: Module, node: ast.expr) -> str:
        q = self._qualify(mod, node)
        if q is None:
            return ""
        return f"{q[0]}.{q[1]}" if q[0] else q[1]

    def _is_dataclass(self, mod: Module, node: ast.ClassDef) -> bool:
        for deco in node.decorator_list:
            target = deco.func if isinstance(deco, ast.Call) else deco
            key = self._key(mod, target)
            if key == "dataclasses.dataclass" or key.endswith(".dataclasses.dataclass"):
                return True
        return False

    def _field_options(self, mod: Module, stmt: ast.AnnAssign) -> Tuple[str, bool, bool]:
        value = stmt.value
        if value is None:
            return "", True, False
        if not (isinstance(value, ast.Call) and self._key(mod, value.func) in FIELD_NAMES):
            return "", True, True
        metadata, init, has_default = "", True, False
        for kw in value.keywords:
            if kw.arg in ("default", "default_factory"):
                has_default = True
            elif kw.arg == "init":
                init = not (isinstance(kw.value, ast.Constant) and kw.value.value is False)
            elif kw.arg == "metadata" and isinstance(kw.value, ast.Dict):
                for k, v in zip(kw.value.keys, kw.value.values):
                    if not (isinstance(k, ast.Constant) and k.value == METADATA_KEY):
                        continue
                    if not (isinstance(v, ast.Constant) and isinstance(v.value, str)):
                        raise GenerationError(f"{METADATA_KEY!r} metadata must be a string literal", mod.pos(v))
                    metadata = v.value
        return metadata, init, has_default

    # Type resolution ----------------------------------------------------

    def resolve(self, mod: Module, node: ast.expr) -> TypeRef:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                try:
                    inner = ast.parse(node.value.strip(), mode="eval").body
                except SyntaxError:
                    return Opaque(node.value)
                ast.copy_location(inner, node)
                return self.resolve(mod, inner)
            return Opaque(ast.unparse(node))
        if isinstance(node, ast.BinOp):
            return self._union(mod, _union_members(node), node)
        if isinstance(node, ast.Subscript):
            return self._generic(mod, self._key(mod, node.value), _subscript_args(node.slice), node)
        if not isinstance(node, (ast.Name, ast.Attribute)):
            return Opaque(ast.unparse(node))

        q = self._qualify(mod, node)
        if q is None:
            raise GenerationError(f"undefined type name {ast.unparse(node)}", mod.pos(node))
        module, name = q
        key = f"{module}.{name}" if module else name
        if key in typesys.SCALAR_NAMES or key == "object":
            return Basic(key)
        if key == "typing.Any":
            return Basic("Any")
        if key in LIST_NAMES:
            return Sequence(Basic("Any"), "list")
        if key in DICT_NAMES:
            return Mapping(Basic("Any"), Basic("Any"))
        if not module:
            return Opaque(key)
        return self._named(module, name)

    def _union(self, mod: Module, members: List[ast.expr], node: ast.expr) -> TypeRef:
        rest = [m for m in members if not _is_none(m)]
        if len(rest) == 1 and len(members) == 2:
            return Nullable(self.resolve(mod, rest[0]))
        return Opaque(ast.unparse(node))

    def _generic(self, mod: Module, key: str, args: List[ast.expr], node: ast.expr) -> TypeRef:
        if key in OPTIONAL_NAMES and len(args) == 1:
            return typesys.ensure_pointer(self.resolve(mod, args[0]))
        if key in UNION_NAMES:
            return self._union(mod, args, node)
        if key in ANNOTATED_NAMES:
            return self.resolve(mod, args[0])
        if key in LIST_NAMES and len(args) == 1:
            return Sequence(self.resolve(mod, args[0]), "list")
        if key in TUPLE_NAMES:
            if len(args) == 2 and isinstance(args[1], ast.Constant) and args[1].value is Ellipsis:
                return Sequence(self.resolve(mod, args[0]), "tuple")
            return Opaque(ast.unparse(node))
        if key in SET_NAMES and len(args) == 1:
            return Sequence(self.resolve(mod, args[0]), "set")
        if key in FROZENSET_NAMES and len(args) == 1:
            return Sequence(self.resolve(mod, args[0]), "frozenset")
        if key in DICT_NAMES and len(args) == 2:
            return Mapping(self.resolve(mod, args[0]), self.resolve(mod, args[1]))
        return Opaque(ast.unparse(node))

    def _named(self, module: str, name: str) -> TypeRef:
        target = self.modules.get(module)
        if target is None or name not in target.symbols:
            # Defined outside the loaded sources: only identical to itself.
            return Named(Namespace(module), name)
        marker = (module, name)
        if marker in self._resolving:
            return Named(Namespace(module), name)
        self._resolving.add(marker)
        try:
            return self._resolve_symbol(target, name)
        finally:
            self._resolving.discard(marker)

    def _resolve_symbol(self, mod: Module, name: str) -> TypeRef:
        sym = mod.symbols[name]
        if isinstance(sym, ClassSym):
            return Named(
                mod.namespace,
                name,
                underlying=self._class_underlying(mod, sym.node),
                is_record=self._is_dataclass(mod, sym.node),
                is_enum=self._is_enum(mod, sym.node),
            )
        if isinstance(sym, NewTypeSym):
            return Named(mod.namespace, name, underlying=self.resolve(mod, sym.base))
        if isinstance(sym, AliasSym):
            return self.resolve(mod, sym.value)
        if isinstance(sym, ImportedName):
            return self._named(sym.module, sym.name)
        return Opaque(name)

    def _is_enum(self, mod: Module, node: ast.ClassDef) -> bool:
        for base in node.bases:
            typ = self.resolve(mod, base)
            if isinstance(typ, Named) and (typ.is_enum or f"{typ.namespace.path}.{typ.name}" in ENUM_NAMES):
                return True
        return False

    def _class_underlying(self, mod: Module, node: ast.ClassDef) -> Optional[TypeRef]:
        for base in node.bases:
            typ = typesys.underlying(self.resolve(mod, base))
            if isinstance(typ, Basic) and typ.name in typesys.SCALAR_NAMES:
                return typ
            if isinstance(typ, (Sequence, Mapping)):
                return typ
        return None


def load_directory(directory: Union[str, pathlib.Path]) -> SourceLoader:
    directory = pathlib.Path(directory)
    if not directory.is_dir():
        raise GenerationError(f"{directory} is not a directory")
    files = sorted(directory.glob("*.py"))
    if not files:
        raise GenerationError(f"no Python sources in {directory}")

    prefix = package_prefix(directory)
    package = ".".join(prefix)
    modules: Dict[str, Module] = {}
    for path in files:
        parts = prefix if path.stem == "__init__" else prefix + [path.stem]
        if not parts:
            continue
        text = path.read_text(encoding="utf-8")
        try:
            tree = ast.parse(text, filename=str(path))
        except SyntaxError as err:
            raise GenerationError(f"syntax error: {err.msg}", Position(str(path), err.lineno or 0, err.offset or 0)) from err
        mod = Module(path=".".join(parts), package=package, filename=str(path), tree=tree)
        _collect_symbols(mod, tree.body)
        modules[mod.path] = mod
        log.debug("loaded module %s from %s", mod.path, path)
    return SourceLoader(modules)
