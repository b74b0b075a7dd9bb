"""
Defines the data types passed between a slate session and its toolchain.

The syntax tree produced by the parser lives here, next to the diagnostics
and classified results the compiler hands back to a session. Results are
immutable: a classified result is produced once per evaluation, consumed
by the dispatcher and discarded.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Diagnostic:
    """A single compiler message with its source position."""
    kind: str                       # ParseError, TypeError, NameError, ...
    message: str
    line: Optional[int] = None
    col: Optional[int] = None
    source_line: Optional[str] = None

    def format(self) -> str:
        if self.line is None:
            return f"{self.kind}: {self.message}"
        head = f"{self.kind}: {self.message} (line {self.line}, col {self.col})"
        if self.source_line is None:
            return head
        width = len(str(self.line))
        caret = " " * max((self.col or 1) - 1, 0)
        return "\n".join([
            head,
            f"> {self.line} | {self.source_line}",
            f"  {' ' * width} | {caret}^",
        ])

    def __str__(self) -> str:
        return self.format()


def source_line(source: str, line: Optional[int]) -> Optional[str]:
    lines = source.splitlines()
    if line is None or line < 1 or line > len(lines):
        return None
    return lines[line - 1]


# =================================================================
# Syntax tree
# =================================================================

class Expr:
    """Base class for expression nodes."""


@dataclass(eq=False)
class Literal(Expr):
    value: Any
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class Var(Expr):
    name: str
    line: int = 0
    col: int = 0
    # Filled in by the type checker; tells the code generator where the name lives.
    resolved: Any = None


@dataclass(eq=False)
class Apply(Expr):
    fn: Expr
    arg: Expr
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class Lambda(Expr):
    params: List[str]
    body: Expr
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class IfExpr(Expr):
    cond: Expr
    then: Expr
    orelse: Expr
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class LetExpr(Expr):
    """`let name params = value in body`; recursive when it has parameters."""
    name: str
    params: List[str]
    value: Expr
    body: Expr
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class ListExpr(Expr):
    items: List[Expr]
    line: int = 0
    col: int = 0


# --- types as written in signatures ---

@dataclass(frozen=True)
class TypeName:
    """A type constructor applied to arguments; '->', '[]' and '()' included."""
    name: str
    args: tuple = ()
    line: int = 0
    col: int = 0


@dataclass(frozen=True)
class TypeVarName:
    name: str
    line: int = 0
    col: int = 0


TypeExpr = Union[TypeName, TypeVarName]


# --- declarations ---

@dataclass(eq=False)
class Import:
    module: str
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class Signature:
    name: str
    type: TypeExpr
    numeric: List[str] = field(default_factory=list)   # vars constrained by `Num a =>`
    line: int = 0
    col: int = 0


@dataclass(eq=False)
class Binding:
    name: str
    params: List[str]
    body: Expr
    strict: bool = False
    line: int = 0
    col: int = 0


Declaration = Union[Import, Signature, Binding]


@dataclass(eq=False)
class ModuleDecl:
    name: str
    decls: List[Declaration]
    line: int = 0
    col: int = 0


# =================================================================
# Source kinds
# =================================================================

@dataclass(frozen=True)
class SymbolRef:
    """Names a compiled top-level symbol: the module it lives in and its source name."""
    module: str
    name: str


@dataclass(frozen=True)
class ModuleKind:
    name: str


@dataclass(frozen=True)
class ExpressionKind:
    symbol: SymbolRef


@dataclass(frozen=True)
class DefinitionsKind:
    pass


SourceKind = Union[ModuleKind, ExpressionKind, DefinitionsKind]


# =================================================================
# Interpreter results
# =================================================================

@dataclass(frozen=True)
class CompilerState:
    """What the compiler knows after a successful run.

    `loader` is the artifact loader that can see the module compiled in this
    run; `symbols` maps source names of that module to their Symbol.
    """
    module: str
    symbols: Any
    loader: Any
    python_source: str = ""


@dataclass(frozen=True)
class Success:
    kind: SourceKind
    state: CompilerState


@dataclass(frozen=True)
class Failure:
    messages: Tuple[Diagnostic, ...] = field(default_factory=tuple)

    def render(self) -> str:
        return "\n".join(d.format() for d in self.messages)


InterpreterResult = Union[Success, Failure]
