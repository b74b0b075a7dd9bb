"""
Python code generation for checked slate modules.

Each module becomes one Python source text that is executed in a namespace
holding `_rt` (the runtime) and `_load` (the loader's `load`). Functions are
curried one-argument lambdas. Top-level values are wrapped in `_rt.Lazy`, or
`_rt.strict` for `!` bindings, so reading one goes through `.get()`.
"""
import math
from typing import Dict, List

from slate.slate_datatypes import Apply, Expr, IfExpr, Lambda, LetExpr, ListExpr, Literal, Var
from slate.slate_types import Builtin, Definition, Imported, Local, TopLevel

# Saturated uses of these built-ins are written as plain Python expressions.
INLINE_BINARY = {
    "+": "({0} + {1})",
    "-": "({0} - {1})",
    "*": "({0} * {1})",
    "/": "_rt.quot({0}, {1})",
    "==": "({0} == {1})",
    "/=": "({0} != {1})",
    "<": "({0} < {1})",
    "<=": "({0} <= {1})",
    ">": "({0} > {1})",
    ">=": "({0} >= {1})",
    "&&": "({0} and {1})",
    "||": "({0} or {1})",
    "++": "({0} + {1})",
    ":": "([{0}] + {1})",
    "$": "({0})({1})",
}
INLINE_UNARY = {
    "negate": "(-{0})",
    "not": "(not {0})",
}


def _literal(value) -> str:
    if isinstance(value, float) and not math.isfinite(value):
        return f"float({str(value)!r})"
    return repr(value)


class CodeGenerator:
    def __init__(self, module: str, imports: List[str] = ()):
        self.module = module
        self.aliases: Dict[str, str] = {}
        for name in imports:
            self._alias(name)

    def _alias(self, module: str) -> str:
        if module not in self.aliases:
            self.aliases[module] = f"_m{len(self.aliases)}"
        return self.aliases[module]

    def generate(self, definitions: List[Definition]) -> str:
        body = [self.definition(d) for d in definitions]
        header = [f"# slate module {self.module}"]
        header += [f"{alias} = _load({module!r}).namespace" for module, alias in self.aliases.items()]
        return "\n".join(header + body) + "\n"

    def definition(self, d: Definition) -> str:
        code = self.expr(d.expr)
        if not d.is_value:
            return f"{d.field} = {code}"
        wrapper = "_rt.strict" if d.strict else "_rt.Lazy"
        return f"{d.field} = {wrapper}(lambda: {code})"

    def expr(self, node: Expr) -> str:
        match node:
            case Literal(value=value):
                return _literal(value)
            case Var():
                return self._reference(node)
            case Apply():
                return self._apply(node)
            case Lambda(params=params, body=body):
                code = self.expr(body)
                for p in reversed(params):
                    code = f"(lambda {self._local(p)}: {code})"
                return code
            case IfExpr(cond=cond, then=then, orelse=orelse):
                return f"({self.expr(then)} if {self.expr(cond)} else {self.expr(orelse)})"
            case LetExpr(name=name, params=params, value=value, body=body):
                local = self._local(name)
                if params:
                    fn = self.expr(Lambda(params, value, node.line, node.col))
                    bound = f"_rt.fix(lambda {local}: {fn})"
                else:
                    bound = self.expr(value)
                return f"(lambda {local}: {self.expr(body)})({bound})"
            case ListExpr(items=items):
                return "[" + ", ".join(self.expr(i) for i in items) + "]"
        raise TypeError(f"cannot generate code for {type(node).__name__}")

    @staticmethod
    def _local(name: str) -> str:
        return f"l_{name}"

    def _reference(self, var: Var) -> str:
        match var.resolved:
            case Local(pyname):
                return pyname
            case TopLevel(field, is_value):
                return f"{field}.get()" if is_value else field
            case Imported(module, field, is_value):
                ref = f"{self._alias(module)}[{field!r}]"
                return f"{ref}.get()" if is_value else ref
            case Builtin(attr, _):
                return f"_rt.{attr}"
        raise TypeError(f"unresolved name '{var.name}'")

    def _apply(self, node: Apply) -> str:
        head, args = node, []
        while isinstance(head, Apply):
            args.append(head.arg)
            head = head.fn
        args.reverse()
        code_args = [self.expr(a) for a in args]
        if isinstance(head, Var) and isinstance(head.resolved, Builtin):
            if head.name in INLINE_BINARY and len(code_args) >= 2:
                code = INLINE_BINARY[head.name].format(*code_args[:2])
                return self._call(code, code_args[2:])
            if head.name in INLINE_UNARY:
                code = INLINE_UNARY[head.name].format(code_args[0])
                return self._call(code, code_args[1:])
        return self._call(self.expr(head), code_args)

    @staticmethod
    def _call(code: str, args: List[str]) -> str:
        for a in args:
            code = f"{code}({a})"
        return code


def generate(module: str, definitions: List[Definition], imports: List[str] = ()) -> str:
    return CodeGenerator(module, imports).generate(definitions)
