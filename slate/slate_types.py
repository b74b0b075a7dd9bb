"""
Types, type schemes and the type checker for slate.

Inference is Hindley-Milner with let-polymorphism. The only constraint is
`Num`, carried as a flag on type variables: a numeric variable may only be
bound to Int, Double, another variable (which becomes numeric), or a rigid
variable that was itself declared `Num`.

Top-level declarations are checked in textual order. A binding sees itself
(for recursion) and everything above it; a later binding of the same name
gets a new version, so earlier users keep the version they were checked
against.
"""
import itertools
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from slate.slate_datatypes import (
    Apply, Binding, Declaration, Diagnostic, Expr, IfExpr, Import, Lambda, LetExpr, ListExpr,
    Literal, Signature, TypeExpr, TypeName, TypeVarName, Var, source_line,
)
from slate.slate_errors import SourceError

_ids = itertools.count()


# ===================================================================
# 1. Type representation
# ===================================================================

class Type:
    pass


class TypeVar(Type):
    def __init__(self, numeric: bool = False):
        self.id = next(_ids)
        self.instance: Optional[Type] = None
        self.numeric = numeric

    def __repr__(self):
        return f"TypeVar({self.id}{', Num' if self.numeric else ''})"


class TypeCon(Type):
    """A type constructor applied to arguments.

    Rigid constructors stand in for the variables of a signature while the
    definition is checked against it; they get unique names and only equal
    themselves.
    """

    def __init__(self, name: str, args: Tuple[Type, ...] = (), rigid: bool = False,
                 numeric: bool = False, display: Optional[str] = None):
        self.name = name
        self.args = tuple(args)
        self.rigid = rigid
        self.numeric = numeric
        self.display = display or name

    def __repr__(self):
        return f"TypeCon({self.display!r}, {self.args!r})"


INT = TypeCon("Int")
DOUBLE = TypeCon("Double")
BOOL = TypeCon("Bool")
STRING = TypeCon("String")
UNIT = TypeCon("()")

# name -> arity
KNOWN_TYPES = {"Int": 0, "Double": 0, "Bool": 0, "String": 0, "()": 0, "[]": 1, "->": 2, "Ref": 1}
NUMERIC_TYPES = {"Int", "Double"}


def fn_type(arg: Type, result: Type) -> Type:
    return TypeCon("->", (arg, result))


def list_type(elem: Type) -> Type:
    return TypeCon("[]", (elem,))


def prune(t: Type) -> Type:
    if isinstance(t, TypeVar) and t.instance is not None:
        t.instance = prune(t.instance)
        return t.instance
    return t


class UnifyError(Exception):
    def __init__(self, expected: Type, found: Type, reason: str = "mismatch"):
        super().__init__(reason)
        self.expected = expected
        self.found = found
        self.reason = reason


def occurs_in(v: TypeVar, t: Type) -> bool:
    t = prune(t)
    if t is v:
        return True
    if isinstance(t, TypeCon):
        return any(occurs_in(v, a) for a in t.args)
    return False


def _bind(v: TypeVar, t: Type):
    if occurs_in(v, t):
        raise UnifyError(v, t, "infinite type")
    if v.numeric:
        if isinstance(t, TypeVar):
            t.numeric = True
        elif not ((t.rigid and t.numeric) or (not t.rigid and t.name in NUMERIC_TYPES)):
            raise UnifyError(v, t, "not numeric")
    v.instance = t


def unify(expected: Type, found: Type):
    a, b = prune(expected), prune(found)
    if a is b:
        return
    if isinstance(a, TypeVar):
        _bind(a, b)
        return
    if isinstance(b, TypeVar):
        _bind(b, a)
        return
    if a.name != b.name or len(a.args) != len(b.args):
        raise UnifyError(a, b)
    for x, y in zip(a.args, b.args):
        unify(x, y)


def free_type_vars(t: Type, acc: Optional[Dict[int, TypeVar]] = None) -> Dict[int, TypeVar]:
    acc = {} if acc is None else acc
    t = prune(t)
    if isinstance(t, TypeVar):
        acc.setdefault(t.id, t)
    else:
        for a in t.args:
            free_type_vars(a, acc)
    return acc


# ===================================================================
# 2. Schemes and printing
# ===================================================================

@dataclass(frozen=True)
class Scheme:
    vars: Tuple[TypeVar, ...]
    type: Type

    def instantiate(self) -> Type:
        return _substitute(self.type, {v.id: TypeVar(v.numeric) for v in self.vars})

    def skolemize(self) -> Type:
        mapping = {}
        for v in self.vars:
            mapping[v.id] = TypeCon(f"{_letter(len(mapping))}#{v.id}", rigid=True,
                                    numeric=v.numeric, display=_letter(len(mapping)))
        return _substitute(self.type, mapping)

    def show(self) -> str:
        return TypePrinter().show(self.type, with_context=True)

    def __str__(self):
        return self.show()


def monotype(t: Type) -> Scheme:
    return Scheme((), t)


def generalize(t: Type, env_free: Optional[Dict[int, TypeVar]] = None) -> Scheme:
    env_free = env_free or {}
    vars_ = tuple(v for vid, v in free_type_vars(t).items() if vid not in env_free)
    return Scheme(vars_, t)


def _substitute(t: Type, mapping: Dict[int, Type]) -> Type:
    t = prune(t)
    if isinstance(t, TypeVar):
        return mapping.get(t.id, t)
    if not t.args:
        return t
    return TypeCon(t.name, tuple(_substitute(a, mapping) for a in t.args), t.rigid, t.numeric, t.display)


def _letter(i: int) -> str:
    return "abcdefghijklmnopqrstuvwxyz"[i % 26] + ("" if i < 26 else str(i // 26))


class TypePrinter:
    """Names type variables a, b, c... consistently across one message."""

    def __init__(self):
        self.names: Dict[int, str] = {}
        self.numeric: List[str] = []

    def _var_name(self, v: TypeVar) -> str:
        if v.id not in self.names:
            self.names[v.id] = _letter(len(self.names))
            if v.numeric:
                self.numeric.append(self.names[v.id])
        return self.names[v.id]

    def show(self, t: Type, with_context: bool = False) -> str:
        body = self._show(t, 0)
        if with_context and self.numeric:
            ctx = ", ".join(f"Num {n}" for n in self.numeric)
            if len(self.numeric) > 1:
                ctx = f"({ctx})"
            return f"{ctx} => {body}"
        return body

    def _show(self, t: Type, prec: int) -> str:
        t = prune(t)
        if isinstance(t, TypeVar):
            return self._var_name(t)
        if t.name == "->":
            s = f"{self._show(t.args[0], 1)} -> {self._show(t.args[1], 0)}"
            return f"({s})" if prec > 0 else s
        if t.name == "[]":
            return f"[{self._show(t.args[0], 0)}]"
        if not t.args:
            return t.display
        s = " ".join([t.display] + [self._show(a, 2) for a in t.args])
        return f"({s})" if prec > 1 else s


def show_type(t: Type) -> str:
    return TypePrinter().show(t, with_context=True)


def scheme_from_syntax(texpr: TypeExpr, numeric: List[str] = (), source: str = "") -> Scheme:
    """Builds a closed scheme from a parsed signature type."""
    varmap: Dict[str, TypeVar] = {}

    def build(node: TypeExpr) -> Type:
        if isinstance(node, TypeVarName):
            if node.name not in varmap:
                varmap[node.name] = TypeVar(node.name in numeric)
            return varmap[node.name]
        arity = KNOWN_TYPES.get(node.name)
        if arity is None:
            raise SourceError(Diagnostic("TypeError", f"unknown type '{node.name}'",
                                         node.line, node.col, source_line(source, node.line)))
        if arity != len(node.args):
            raise SourceError(Diagnostic(
                "TypeError",
                f"type '{node.name}' expects {arity} argument(s), got {len(node.args)}",
                node.line, node.col, source_line(source, node.line)))
        return TypeCon(node.name, tuple(build(a) for a in node.args))

    t = build(texpr)
    return Scheme(tuple(varmap.values()), t)


# ===================================================================
# 3. Symbols and name resolution
# ===================================================================

@dataclass(frozen=True)
class Local:
    pyname: str


@dataclass(frozen=True)
class TopLevel:
    field: str
    is_value: bool


@dataclass(frozen=True)
class Imported:
    module: str
    field: str
    is_value: bool


@dataclass(frozen=True)
class Builtin:
    attr: str
    name: str


@dataclass(frozen=True)
class Symbol:
    """A compiled top-level definition, as seen from outside its module."""
    name: str
    scheme: Scheme
    field: str
    module: str
    is_value: bool
    strict: bool = False


@dataclass
class Definition:
    """One checked top-level binding, in the order the code generator emits it."""
    field: str
    expr: Expr
    is_value: bool
    strict: bool


def local_name(name: str) -> str:
    return f"l_{name}"


# ===================================================================
# 4. The checker
# ===================================================================

class TypeChecker:
    """
    Checks declarations and expressions for one compiled module.

    Diagnostics are collected rather than raised so that one bad declaration
    does not hide errors in the next one; callers inspect `diagnostics`.
    """

    def __init__(self, module: str, builtins: Dict[str, Tuple[Scheme, Any]],
                 loader: Any = None, max_errors: int = 20):
        self.module = module
        self.globals: Dict[str, Tuple[Scheme, Any]] = dict(builtins)
        self.loader = loader
        self.max_errors = max_errors
        self.diagnostics: List[Diagnostic] = []
        self.symbols: Dict[str, Symbol] = {}
        self.definitions: List[Definition] = []
        self.imports: List[str] = []
        self._versions: Counter = Counter()
        self._source = ""

    @property
    def should_stop(self) -> bool:
        return len(self.diagnostics) >= self.max_errors

    def _report(self, diag: Diagnostic):
        if not self.should_stop:
            self.diagnostics.append(diag)

    def _error(self, kind: str, message: str, node: Any) -> SourceError:
        line = getattr(node, "line", None) or None
        col = getattr(node, "col", None) or None
        return SourceError(Diagnostic(kind, message, line, col, source_line(self._source, line)))

    # --- declarations ---

    def check_declarations(self, decls: List[Declaration], source: str):
        """Checks one fragment's declarations; signatures must be followed by their binding."""
        self._source = source
        pending: Dict[str, Tuple[Signature, Scheme]] = {}
        for decl in decls:
            if self.should_stop:
                return
            try:
                match decl:
                    case Import():
                        self._import(decl)
                    case Signature():
                        if decl.name in pending:
                            raise self._error("TypeError", f"duplicate type signature for '{decl.name}'", decl)
                        pending[decl.name] = (decl, scheme_from_syntax(decl.type, decl.numeric, source))
                    case Binding():
                        sig = pending.pop(decl.name, None)
                        self._check_binding(decl, sig[1] if sig else None)
            except SourceError as e:
                self._report(e.diagnostic)
        for sig, _ in pending.values():
            self._report(self._error(
                "TypeError", f"type signature for '{sig.name}' lacks an accompanying binding", sig).diagnostic)

    def _import(self, decl: Import):
        artifact = self.loader.find(decl.module) if self.loader is not None else None
        if artifact is None:
            raise self._error("NameError", f"unknown module '{decl.module}'", decl)
        for name, sym in artifact.symbols.items():
            self.globals[name] = (sym.scheme, Imported(sym.module, sym.field, sym.is_value))
        if decl.module not in self.imports:
            self.imports.append(decl.module)

    def _check_binding(self, b: Binding, declared: Optional[Scheme]):
        version = self._versions[b.name]
        self._versions[b.name] += 1
        field = f"v_{b.name}_{version}"
        is_value = not b.params
        target = TopLevel(field, is_value)
        rhs = Lambda(b.params, b.body, b.line, b.col) if b.params else b.body
        try:
            if declared is not None:
                self.globals[b.name] = (declared, target)
                inferred = self.infer(rhs, {})
                self._check_against(inferred, declared, b)
                scheme = declared
            else:
                mono = TypeVar()
                self.globals[b.name] = (monotype(mono), target)
                inferred = self.infer(rhs, {})
                try:
                    unify(mono, inferred)
                except UnifyError as e:
                    raise self._mismatch(e, b)
                scheme = generalize(inferred)
        except SourceError:
            # Keep later declarations checkable; the error is still reported.
            anything = TypeVar()
            self.globals[b.name] = (Scheme((anything,), anything), target)
            raise
        self.globals[b.name] = (scheme, target)
        self.symbols[b.name] = Symbol(b.name, scheme, field, self.module, is_value, b.strict)
        self.definitions.append(Definition(field, rhs, is_value, b.strict))

    def _check_against(self, inferred: Type, declared: Scheme, b: Binding):
        rigid = declared.skolemize()
        try:
            unify(rigid, inferred)
        except UnifyError:
            printer = TypePrinter()
            raise self._error(
                "TypeError",
                f"'{b.name}' is declared as '{declared.show()}' but its definition has type "
                f"'{printer.show(inferred, with_context=True)}'", b)

    def check_expression(self, expr: Expr, source: str, name: str, field: str) -> Optional[Symbol]:
        """Checks a bare expression and records it as a value definition."""
        self._source = source
        try:
            scheme = generalize(self.infer(expr, {}))
        except SourceError as e:
            self._report(e.diagnostic)
            return None
        sym = Symbol(name, scheme, field, self.module, True)
        self.symbols[name] = sym
        self.definitions.append(Definition(field, expr, True, False))
        return sym

    # --- expressions ---

    def infer(self, expr: Expr, env: Dict[str, Tuple[Scheme, Any]]) -> Type:
        match expr:
            case Literal(value=value):
                if isinstance(value, bool):
                    return BOOL
                if isinstance(value, int):
                    return INT
                if isinstance(value, float):
                    return DOUBLE
                if isinstance(value, str):
                    return STRING
                return UNIT
            case Var(name=name):
                entry = env.get(name) or self.globals.get(name)
                if entry is None:
                    raise self._error("NameError", f"undefined name '{name}'", expr)
                scheme, target = entry
                expr.resolved = target
                return scheme.instantiate()
            case Apply(fn=fn, arg=arg):
                fn_t = self.infer(fn, env)
                arg_t = self.infer(arg, env)
                result = TypeVar()
                try:
                    unify(fn_t, fn_type(arg_t, result))
                except UnifyError as e:
                    raise self._mismatch(e, arg)
                return result
            case Lambda(params=params, body=body):
                inner = dict(env)
                param_types = []
                for p in params:
                    tv = TypeVar()
                    param_types.append(tv)
                    inner[p] = (monotype(tv), Local(local_name(p)))
                t = self.infer(body, inner)
                for tv in reversed(param_types):
                    t = fn_type(tv, t)
                return t
            case IfExpr(cond=cond, then=then, orelse=orelse):
                try:
                    unify(BOOL, self.infer(cond, env))
                except UnifyError as e:
                    raise self._mismatch(e, cond)
                then_t = self.infer(then, env)
                try:
                    unify(then_t, self.infer(orelse, env))
                except UnifyError as e:
                    raise self._mismatch(e, orelse)
                return then_t
            case LetExpr(name=name, params=params, value=value, body=body):
                target = Local(local_name(name))
                if params:
                    tv = TypeVar()
                    inner = dict(env)
                    inner[name] = (monotype(tv), target)
                    value_t = self.infer(Lambda(params, value, expr.line, expr.col), inner)
                    try:
                        unify(tv, value_t)
                    except UnifyError as e:
                        raise self._mismatch(e, expr)
                else:
                    value_t = self.infer(value, env)
                env_free: Dict[int, TypeVar] = {}
                for scheme, _ in env.values():
                    quantified = {v.id for v in scheme.vars}
                    for vid, v in free_type_vars(scheme.type).items():
                        if vid not in quantified:
                            env_free[vid] = v
                body_env = dict(env)
                body_env[name] = (generalize(value_t, env_free), target)
                return self.infer(body, body_env)
            case ListExpr(items=items):
                elem = TypeVar()
                for item in items:
                    try:
                        unify(elem, self.infer(item, env))
                    except UnifyError as e:
                        raise self._mismatch(e, item)
                return list_type(elem)
        raise self._error("TypeError", f"cannot type {type(expr).__name__}", expr)

    def _mismatch(self, e: UnifyError, node: Expr) -> SourceError:
        printer = TypePrinter()
        expected = printer.show(e.expected)
        found = printer.show(e.found)
        if e.reason == "infinite type":
            msg = f"infinite type: '{expected}' occurs in '{found}'"
        elif e.reason == "not numeric":
            msg = f"type '{found}' is not numeric"
        else:
            msg = f"type mismatch: expected '{expected}', found '{found}'"
        return self._error("TypeError", msg, node)
