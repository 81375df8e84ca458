"""
model_dsl.py — textual program models
=====================================

A small declarative language describing the input of the narrowing
analysis: the type catalog, the fields, and for every method body the
operation events the analysis consumes.  It lets the command-line checker
run without a compiler front-end, and keeps test scenarios readable.

Example::

    class Animal;
    class Dog : Animal;
    struct Point;

    field Zoo.keeper : object;

    method Zoo.Run {
        local pet : Animal @ 12:9;
        init pet = new Dog;
        assign pet = implicit Animal(new Dog);   # compiler-inserted upcast
        assign pet = (Animal) new Dog;           # explicit cast, kept as Animal
        assign keeper = new Point;               # boxing into object
        increment counter : int;
        bind out pet : Animal;
        call Swap(ref pet : Animal, 42 : int);
    }

    initializer Zoo {
        field-init keeper = new Point;
    }

``?`` in place of a type name stands for a type the front-end could not
resolve; contributions of such types are dropped by the analysis.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from narrowtype.errors import (
    ErrorCodes,
    ModelError,
    ModelSyntaxError,
    SourceSpan,
)
from narrowtype.events import (
    AnalysisUnit,
    Argument,
    Assignment,
    Compilation,
    Conversion,
    Event,
    FieldInitializer,
    IncrementDecrement,
    Initializer,
    Invocation,
    Literal,
    OutRefBinding,
    RefKind,
    SourceLocation,
    Symbol,
    TypedValue,
    Value,
    field_symbol,
    local,
)
from narrowtype.type_model import NamedType, TypeCatalog, TypeKind

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

MODEL_GRAMMAR = Grammar(r'''
    model           = _ item*
    item            = type_decl / field_decl / method_decl / init_block

    type_decl       = type_kind __ qname _ supertypes? ";" _
    type_kind       = "class" / "struct" / "interface" / "enum" / "delegate"
    supertypes      = ":" _ qname more_qnames _

    field_decl      = "field" __ qname _ ":" _ type_ref _ location? ";" _

    method_decl     = "method" __ qname _ "{" _ stmt* "}" _
    init_block      = "initializer" __ qname _ "{" _ stmt* "}" _

    stmt            = local_decl / init_stmt / field_init_stmt / assign_stmt
                    / incr_stmt / bind_stmt / call_stmt
    local_decl      = "local" __ name _ ":" _ type_ref _ location? ";" _
    init_stmt       = "init" __ name more_names _ "=" _ value _ ";" _
    field_init_stmt = "field-init" __ qname more_qnames _ "=" _ value _ ";" _
    assign_stmt     = "assign" __ qname _ assign_op _ value _ ";" _
    assign_op       = "??=" / "+=" / "-=" / "*=" / "/=" / "%=" / "&=" / "|=" / "^=" / "="
    incr_stmt       = incr_kw __ qname _ incr_type? ";" _
    incr_kw         = "increment" / "decrement"
    incr_type       = ":" _ type_ref _
    bind_stmt       = "bind" __ ref_kw __ qname _ ":" _ type_ref _ ";" _
    call_stmt       = "call" __ qname _ "(" _ args? ")" _ ";" _
    args            = arg more_args _
    more_args       = (_ "," _ arg)*
    arg             = ref_prefix? arg_target _ ":" _ type_ref
    arg_target      = qname / number
    ref_prefix      = ref_kw __
    ref_kw          = "ref" / "out" / "in"

    value           = cast_value / implicit_value / new_value / default_value
                    / number_value / symbol_value
    cast_value      = "(" _ type_ref _ ")" _ value
    implicit_value  = "implicit" __ type_ref _ "(" _ value _ ")"
    new_value       = "new" __ type_ref
    default_value   = "value" __ type_ref
    number_value    = ~r"[0-9]+"
    symbol_value    = name ("." name)*

    more_names      = (_ "," _ name)*
    more_qnames     = (_ "," _ qname)*
    type_ref        = "?" / qname
    location        = "@" _ number ":" number _
    qname           = name ("." name)*
    name            = ~r"[A-Za-z_][A-Za-z0-9_]*"
    number          = ~r"[0-9]+"

    _               = meaningless*
    meaningless     = ~r"\s+" / comment
    comment         = ~r"#[^\r\n]*"
    __              = ~r"[ \t]+"
''')


_TYPE_KINDS = {
    "class": TypeKind.CLASS,
    "struct": TypeKind.STRUCTURE,
    "interface": TypeKind.INTERFACE,
    "enum": TypeKind.ENUM,
    "delegate": TypeKind.DELEGATE,
}

_REF_KINDS = {
    "ref": RefKind.REF,
    "out": RefKind.OUT,
    "in": RefKind.IN,
}

UNRESOLVED = "?"
DISCARD = "_"


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — PARSE RECORDS
# ═══════════════════════════════════════════════════════════════════

@dataclass
class TypeDecl:
    kind: TypeKind
    name: str
    supertypes: List[str]
    start: int


@dataclass
class FieldDecl:
    qname: str
    type_name: str
    location: Optional[Tuple[int, int]]
    start: int


@dataclass
class Stmt:
    keyword: str
    start: int
    args: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UnitDecl:
    name: str
    is_method: bool
    stmts: List[Stmt]
    start: int


Record = Union[TypeDecl, FieldDecl, UnitDecl]


def _opt(value: Any) -> Any:
    """Unwrap an optional (``x?``) match: its single result, or ``None``."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _many(value: Any) -> List[Any]:
    """Unwrap a repetition (``x*``) match into a list."""
    return value if isinstance(value, list) else []


class ModelASTBuilder(NodeVisitor):
    """Turns the parse tree into a flat list of parse records."""

    grammar = MODEL_GRAMMAR

    def generic_visit(self, node: Node, visited_children: List[Any]) -> Any:
        return visited_children or node

    # ── Top level ────────────────────────────────────────────────────

    def visit_model(self, node, visited_children):
        _, items = visited_children
        return _many(items)

    def visit_item(self, node, visited_children):
        return visited_children[0]

    def visit_type_decl(self, node, visited_children):
        kind, _, name, _, supers, _, _ = visited_children
        return TypeDecl(_TYPE_KINDS[kind], name, _opt(supers) or [], node.start)

    def visit_type_kind(self, node, visited_children):
        return node.text

    def visit_supertypes(self, node, visited_children):
        _, _, first, rest, _ = visited_children
        return [first] + rest

    def visit_field_decl(self, node, visited_children):
        _, _, qname, _, _, _, type_name, _, loc, _, _ = visited_children
        return FieldDecl(qname, type_name, _opt(loc), node.start)

    def visit_method_decl(self, node, visited_children):
        _, _, qname, _, _, _, stmts, _, _ = visited_children
        return UnitDecl(qname, True, _many(stmts), node.start)

    def visit_init_block(self, node, visited_children):
        _, _, qname, _, _, _, stmts, _, _ = visited_children
        return UnitDecl(qname, False, _many(stmts), node.start)

    # ── Statements ───────────────────────────────────────────────────

    def visit_stmt(self, node, visited_children):
        return visited_children[0]

    def visit_local_decl(self, node, visited_children):
        _, _, name, _, _, _, type_name, _, loc, _, _ = visited_children
        return Stmt("local", node.start, {
            "name": name, "type": type_name, "location": _opt(loc),
        })

    def visit_init_stmt(self, node, visited_children):
        _, _, first, rest, _, _, _, value, _, _, _ = visited_children
        return Stmt("init", node.start, {"names": [first] + rest, "value": value})

    def visit_field_init_stmt(self, node, visited_children):
        _, _, first, rest, _, _, _, value, _, _, _ = visited_children
        return Stmt("field-init", node.start, {"names": [first] + rest, "value": value})

    def visit_assign_stmt(self, node, visited_children):
        _, _, target, _, op, _, value, _, _, _ = visited_children
        return Stmt("assign", node.start, {"target": target, "op": op, "value": value})

    def visit_assign_op(self, node, visited_children):
        return node.text

    def visit_incr_stmt(self, node, visited_children):
        kw, _, target, _, type_name, _, _ = visited_children
        return Stmt(kw, node.start, {"target": target, "type": _opt(type_name)})

    def visit_incr_kw(self, node, visited_children):
        return node.text

    def visit_incr_type(self, node, visited_children):
        _, _, type_name, _ = visited_children
        return type_name

    def visit_bind_stmt(self, node, visited_children):
        _, _, ref_kw, _, target, _, _, _, type_name, _, _, _ = visited_children
        return Stmt("bind", node.start, {
            "ref": ref_kw, "target": target, "type": type_name,
        })

    def visit_call_stmt(self, node, visited_children):
        _, _, callee, _, _, _, args, _, _, _, _ = visited_children
        return Stmt("call", node.start, {"callee": callee, "args": _opt(args) or []})

    def visit_args(self, node, visited_children):
        first, rest, _ = visited_children
        return [first] + rest

    def visit_more_args(self, node, visited_children):
        return [group[3] for group in visited_children]

    def visit_arg(self, node, visited_children):
        ref_kw, target, _, _, _, type_name = visited_children
        return (_opt(ref_kw) or "", target, type_name)

    def visit_arg_target(self, node, visited_children):
        return node.text

    def visit_ref_prefix(self, node, visited_children):
        return visited_children[0]

    def visit_ref_kw(self, node, visited_children):
        return node.text

    # ── Values ───────────────────────────────────────────────────────

    def visit_value(self, node, visited_children):
        return visited_children[0]

    def visit_cast_value(self, node, visited_children):
        _, _, type_name, _, _, _, inner = visited_children
        return ("cast", type_name, inner)

    def visit_implicit_value(self, node, visited_children):
        _, _, type_name, _, _, _, inner, _, _ = visited_children
        return ("implicit", type_name, inner)

    def visit_new_value(self, node, visited_children):
        return ("new", visited_children[2])

    def visit_default_value(self, node, visited_children):
        return ("value", visited_children[2])

    def visit_number_value(self, node, visited_children):
        return ("number", node.text)

    def visit_symbol_value(self, node, visited_children):
        return ("symbol", node.text)

    # ── Lexical ──────────────────────────────────────────────────────

    def visit_more_names(self, node, visited_children):
        return [group[3] for group in visited_children]

    def visit_more_qnames(self, node, visited_children):
        return [group[3] for group in visited_children]

    def visit_type_ref(self, node, visited_children):
        return node.text

    def visit_location(self, node, visited_children):
        _, _, line, _, column, _ = visited_children
        return (int(line.text), int(column.text))

    def visit_qname(self, node, visited_children):
        return node.text

    def visit_name(self, node, visited_children):
        return node.text


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — COMPILATION BUILDER
# ═══════════════════════════════════════════════════════════════════

class CompilationBuilder:
    """Resolves parse records against a fresh ``TypeCatalog``."""

    def __init__(self, text: str, filename: str = "<model>") -> None:
        self.text = text
        self.filename = filename
        self.catalog = TypeCatalog()
        self.compilation = Compilation(self.catalog, name=filename)
        self._fields: Dict[str, Symbol] = {}

    def build(self, records: List[Record]) -> Compilation:
        self._define_types([r for r in records if isinstance(r, TypeDecl)])
        for record in records:
            if isinstance(record, FieldDecl):
                self._declare_field(record)
        for record in records:
            if isinstance(record, UnitDecl):
                self.compilation.units.append(self._build_unit(record))
        logger.debug(
            "Loaded model %s: %d types, %d fields, %d units",
            self.filename, len(self.catalog), len(self.compilation.fields),
            len(self.compilation.units),
        )
        return self.compilation

    # ── Types ────────────────────────────────────────────────────────

    def _define_types(self, pending: List[TypeDecl]) -> None:
        # supertypes may be declared after their subtypes
        while pending:
            deferred = [
                decl for decl in pending
                if any(sup not in self.catalog for sup in decl.supertypes)
            ]
            ready = [decl for decl in pending if decl not in deferred]
            if not ready:
                decl = deferred[0]
                missing = next(s for s in decl.supertypes if s not in self.catalog)
                raise ModelError(
                    f"unknown type {missing!r} in declaration of {decl.name!r}",
                    code=ErrorCodes.UNKNOWN_TYPE,
                    span=self._span(decl.start),
                )
            for decl in ready:
                try:
                    self.catalog.define(decl.kind, decl.name, decl.supertypes)
                except ModelError as exc:
                    raise ModelError(exc.message, code=exc.code,
                                     span=self._span(decl.start)) from exc
            pending = deferred

    def _type(self, name: str, start: int) -> Optional[NamedType]:
        if name == UNRESOLVED:
            return None
        t = self.catalog.get(name)
        if t is None:
            raise ModelError(
                f"unknown type {name!r}",
                code=ErrorCodes.UNKNOWN_TYPE,
                span=self._span(start),
            )
        return t

    # ── Symbols ──────────────────────────────────────────────────────

    def _declare_field(self, decl: FieldDecl) -> None:
        if decl.qname in self._fields:
            raise ModelError(
                f"field {decl.qname!r} is declared twice",
                code=ErrorCodes.DUPLICATE_SYMBOL,
                span=self._span(decl.start),
            )
        container, _, name = decl.qname.rpartition(".")
        sym = field_symbol(
            name,
            self._type(decl.type_name, decl.start),
            self._location(decl.location, decl.start),
            container,
        )
        self._fields[decl.qname] = sym
        self.compilation.fields.append(sym)

    def _location(self, explicit: Optional[Tuple[int, int]], start: int) -> SourceLocation:
        if explicit is not None:
            return SourceLocation(self.filename, explicit[0], explicit[1])
        span = self._span(start)
        return SourceLocation(self.filename, span.line, span.column)

    # ── Units ────────────────────────────────────────────────────────

    def _build_unit(self, decl: UnitDecl) -> AnalysisUnit:
        unit = AnalysisUnit(decl.name, is_method=decl.is_method)
        container = decl.name.rpartition(".")[0] if decl.is_method else decl.name
        scope = _UnitScope(self, unit, container)
        for stmt in decl.stmts:
            event = scope.statement(stmt)
            if event is not None:
                unit.events.append(event)
        return unit

    def _span(self, start: int) -> SourceSpan:
        line = self.text.count("\n", 0, start) + 1
        column = start - (self.text.rfind("\n", 0, start) + 1) + 1
        return SourceSpan(self.filename, line, column)


class _UnitScope:
    """Name resolution and event construction inside one unit."""

    def __init__(self, builder: CompilationBuilder, unit: AnalysisUnit, container: str) -> None:
        self.builder = builder
        self.unit = unit
        self.container = container
        self.locals: Dict[str, Symbol] = {}

    def statement(self, stmt: Stmt) -> Optional[Event]:
        a = stmt.args
        kw = stmt.keyword
        if kw == "local":
            self._declare_local(a["name"], a["type"], a["location"], stmt.start)
            return None
        if kw == "init":
            symbols = tuple(self._local(n, stmt.start) for n in a["names"])
            return Initializer(symbols, self._value(a["value"], stmt.start))
        if kw == "field-init":
            fields = tuple(self._field(n, stmt.start) for n in a["names"])
            return FieldInitializer(fields, self._value(a["value"], stmt.start))
        if kw == "assign":
            return Assignment(
                self._target(a["target"], stmt.start),
                self._value(a["value"], stmt.start),
                compound=a["op"] != "=",
            )
        if kw in ("increment", "decrement"):
            target = self._target(a["target"], stmt.start)
            if a["type"] is not None:
                static_type = self.builder._type(a["type"], stmt.start)
            else:
                static_type = target.declared_type if target is not None else None
            return IncrementDecrement(target, static_type, decrement=kw == "decrement")
        if kw == "bind":
            target = self._target(a["target"], stmt.start)
            param_type = self.builder._type(a["type"], stmt.start)
            ref_kind = _REF_KINDS[a["ref"]]
            if ref_kind == RefKind.IN:
                return Invocation((Argument(target, param_type, ref_kind),))
            return OutRefBinding(target, param_type)
        if kw == "call":
            return Invocation(tuple(
                self._argument(ref, target, type_name, stmt.start)
                for ref, target, type_name in a["args"]
            ))
        raise ModelError(f"unsupported statement {kw!r}", span=self.builder._span(stmt.start))

    # ── Resolution helpers ───────────────────────────────────────────

    def _declare_local(self, name: str, type_name: str,
                       loc: Optional[Tuple[int, int]], start: int) -> None:
        if name in self.locals:
            raise ModelError(
                f"local {name!r} is declared twice in {self.unit.name!r}",
                code=ErrorCodes.DUPLICATE_SYMBOL,
                span=self.builder._span(start),
            )
        sym = local(
            name,
            self.builder._type(type_name, start),
            self.builder._location(loc, start),
            self.unit.name,
        )
        self.locals[name] = sym
        self.unit.locals.append(sym)

    def _local(self, name: str, start: int) -> Symbol:
        sym = self.locals.get(name)
        if sym is None:
            raise ModelError(
                f"unknown local {name!r} in {self.unit.name!r}",
                code=ErrorCodes.UNKNOWN_SYMBOL,
                span=self.builder._span(start),
            )
        return sym

    def _field(self, name: str, start: int) -> Symbol:
        fields = self.builder._fields
        sym = fields.get(name)
        if sym is None and self.container:
            sym = fields.get(f"{self.container}.{name}")
        if sym is None:
            raise ModelError(
                f"unknown field {name!r}",
                code=ErrorCodes.UNKNOWN_SYMBOL,
                span=self.builder._span(start),
            )
        return sym

    def _lookup(self, name: str, start: int) -> Symbol:
        if name in self.locals:
            return self.locals[name]
        return self._field(name, start)

    def _target(self, name: str, start: int) -> Optional[Symbol]:
        if name == DISCARD:
            return None
        return self._lookup(name, start)

    def _argument(self, ref: str, target: str, type_name: str, start: int) -> Argument:
        ref_kind = _REF_KINDS.get(ref, RefKind.NONE)
        param_type = self.builder._type(type_name, start)
        if ref_kind == RefKind.NONE:
            # by-value arguments may be arbitrary expressions
            sym = self.locals.get(target) or self.builder._fields.get(target)
            return Argument(sym, param_type, ref_kind)
        return Argument(self._target(target, start), param_type, ref_kind)

    def _value(self, raw: Tuple[Any, ...], start: int) -> Value:
        tag = raw[0]
        if tag in ("new", "value"):
            return TypedValue(self.builder._type(raw[1], start))
        if tag == "number":
            return Literal(self.builder.catalog.get("int"), int(raw[1]))
        if tag == "symbol":
            return TypedValue(self._lookup(raw[1], start).declared_type)
        if tag == "cast":
            return Conversion.explicit(self._value(raw[2], start),
                                       self.builder._type(raw[1], start))
        if tag == "implicit":
            return Conversion.implicit(self._value(raw[2], start),
                                       self.builder._type(raw[1], start))
        raise ModelError(f"unsupported value {raw!r}", span=self.builder._span(start))


# ═══════════════════════════════════════════════════════════════════
#  PART 4 — PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse_model(text: str, filename: str = "<model>") -> List[Record]:
    """Parse *text* into parse records; raise ``ModelSyntaxError`` on failure."""
    try:
        tree = MODEL_GRAMMAR.parse(text)
    except IncompleteParseError as exc:
        raise ModelSyntaxError(
            f"unexpected text {exc.text[exc.pos:exc.pos + 20]!r}",
            code=ErrorCodes.MODEL_INCOMPLETE,
            span=SourceSpan(filename, exc.line(), exc.column()),
        ) from exc
    except ParseError as exc:
        raise ModelSyntaxError(
            f"syntax error near {exc.text[exc.pos:exc.pos + 20]!r}",
            code=ErrorCodes.MODEL_PARSE_FAILED,
            span=SourceSpan(filename, exc.line(), exc.column()),
        ) from exc
    return ModelASTBuilder().visit(tree)


def load_model(text: str, filename: str = "<model>") -> Compilation:
    """Parse and resolve a program model into a ``Compilation``."""
    records = parse_model(text, filename)
    return CompilationBuilder(text, filename).build(records)


def load_model_file(path: Union[str, Path]) -> Compilation:
    p = Path(path)
    logger.info("Loading program model: %s", p)
    return load_model(p.read_text(encoding="utf-8"), str(p))


__all__ = [
    "MODEL_GRAMMAR",
    "ModelASTBuilder",
    "CompilationBuilder",
    "parse_model",
    "load_model",
    "load_model_file",
]
