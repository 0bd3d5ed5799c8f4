"""Small typed fragments of Python code.

Conversions and presence checks are built from these nodes and only turned into
text at the very end, once the namespace aliases are known.
"""

from __future__ import annotations

import dataclasses
from typing import Any, List, Sequence, Tuple

from .typesys import Namespace, Nullable, Qualifier, TypeRef, constructor_string

INDENT = "    "


class Expr:
    def render(self, q: Qualifier) -> str:
        raise NotImplementedError


@dataclasses.dataclass(frozen=True)
class Name(Expr):
    ident: str

    def render(self, q: Qualifier) -> str:
        return self.ident


@dataclasses.dataclass(frozen=True)
class Attr(Expr):
    value: Expr
    attr: str

    def render(self, q: Qualifier) -> str:
        return f"{self.value.render(q)}.{self.attr}"


@dataclasses.dataclass(frozen=True)
class Subscript(Expr):
    value: Expr
    index: Expr

    def render(self, q: Qualifier) -> str:
        return f"{self.value.render(q)}[{self.index.render(q)}]"


@dataclasses.dataclass(frozen=True)
class Const(Expr):
    value: Any

    def render(self, q: Qualifier) -> str:
        return repr(self.value)


@dataclasses.dataclass(frozen=True)
class QualifiedName(Expr):
    namespace: Namespace
    name: str

    def render(self, q: Qualifier) -> str:
        prefix = q(self.namespace)
        return f"{prefix}.{self.name}" if prefix else self.name


@dataclasses.dataclass(frozen=True)
class Ref(Expr):
    """Takes a plain value into its nullable form. Python values need no boxing."""

    value: Expr

    def render(self, q: Qualifier) -> str:
        return self.value.render(q)


@dataclasses.dataclass(frozen=True)
class Deref(Expr):
    """Reads the value out of its nullable form; callers check for None first."""

    value: Expr

    def render(self, q: Qualifier) -> str:
        return self.value.render(q)


@dataclasses.dataclass(frozen=True)
class Cast(Expr):
    target: TypeRef
    value: Expr

    def render(self, q: Qualifier) -> str:
        if isinstance(self.target, Nullable):
            ctor = constructor_string(self.target.elem, q)
            if isinstance(self.value, Ref):
                return f"{ctor}({self.value.value.render(q)})"
            v = self.value.render(q)
            return f"(None if {v} is None else {ctor}({v}))"
        return f"{constructor_string(self.target, q)}({self.value.render(q)})"


@dataclasses.dataclass(frozen=True)
class Call(Expr):
    func: Expr
    args: Tuple[Expr, ...] = ()

    def render(self, q: Qualifier) -> str:
        return f"{self.func.render(q)}({', '.join(a.render(q) for a in self.args)})"


@dataclasses.dataclass(frozen=True)
class IsNotNone(Expr):
    value: Expr

    def render(self, q: Qualifier) -> str:
        return f"{self.value.render(q)} is not None"


@dataclasses.dataclass(frozen=True)
class NotIn(Expr):
    item: Expr
    container: Expr

    def render(self, q: Qualifier) -> str:
        return f"{self.item.render(q)} not in {self.container.render(q)}"


class Stmt:
    def lines(self, q: Qualifier, level: int) -> List[str]:
        raise NotImplementedError


@dataclasses.dataclass(frozen=True)
class Assign(Stmt):
    target: Expr
    value: Expr

    def lines(self, q: Qualifier, level: int) -> List[str]:
        return [f"{INDENT * level}{self.target.render(q)} = {self.value.render(q)}"]


@dataclasses.dataclass(frozen=True)
class Raise(Stmt):
    exc: Expr

    def lines(self, q: Qualifier, level: int) -> List[str]:
        return [f"{INDENT * level}raise {self.exc.render(q)}"]


@dataclasses.dataclass(frozen=True)
class If(Stmt):
    test: Expr
    body: Tuple[Stmt, ...]
    orelse: Tuple[Stmt, ...] = ()

    def lines(self, q: Qualifier, level: int) -> List[str]:
        out = [f"{INDENT * level}if {self.test.render(q)}:"]
        out.extend(render_lines(self.body, q, level + 1))
        if self.orelse:
            out.append(f"{INDENT * level}else:")
            out.extend(render_lines(self.orelse, q, level + 1))
        return out


def render_lines(stmts: Sequence[Stmt], q: Qualifier, level: int = 0) -> List[str]:
    out: List[str] = []
    for stmt in stmts:
        out.extend(stmt.lines(q, level))
    return out
