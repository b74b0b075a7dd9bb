"""
Transforms the raw koine parse tree into the syntax tree in slate_datatypes.

Grammar rules arrive as dicts tagged with the rule name, carrying the
position of their first token and a flat list of children. Tokens arrive
as leaves tagged with their token type. Operator chains come through flat
(`operand (op operand)*`) and are grouped here by precedence.
"""
import re
from typing import List, Optional, Tuple

from slate.slate_datatypes import (
    Apply, Binding, Diagnostic, Expr, IfExpr, Import, Lambda, LetExpr, ListExpr, Literal,
    ModuleDecl, Signature, TypeExpr, TypeName, TypeVarName, Var, source_line,
)
from slate.slate_errors import SourceError


def syntax_error(source: str, message: str, line: Optional[int], col: Optional[int]) -> SourceError:
    return SourceError(Diagnostic("ParseError", message, line, col, source_line(source, line)))


def _children(node: dict) -> list:
    return node.get('children') or []


def _first(children: list, tag: str) -> Optional[dict]:
    return next((c for c in children if c.get('tag') == tag), None)


def _all(children: list, tag: str) -> list:
    return [c for c in children if c.get('tag') == tag]


_ESCAPE = re.compile(r'\\(.)')
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", '"': '"', "\\": "\\"}


class SlateTransformer:
    """
    Operator table (higher binds tighter):
        $                0  right
        ||               2  right
        &&               3  right
        == /= < <= > >=  4  non-associative
        : ++             5  right
        + -              6  left
        * /              7  left
    """

    PRECEDENCE = {
        "$": (0, "right"),
        "||": (2, "right"),
        "&&": (3, "right"),
        "==": (4, "none"), "/=": (4, "none"),
        "<": (4, "none"), "<=": (4, "none"), ">": (4, "none"), ">=": (4, "none"),
        ":": (5, "right"), "++": (5, "right"),
        "+": (6, "left"), "-": (6, "left"),
        "*": (7, "left"), "/": (7, "left"),
    }

    def __init__(self, source: str = ""):
        self.source = source

    def _error(self, message: str, node: dict) -> SourceError:
        return syntax_error(self.source, message, node.get('line'), node.get('col'))

    def transform(self, node):
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        tag = node.get('tag')
        children = _children(node)
        line, col = node.get('line', 0), node.get('col', 0)

        match tag:
            # Fragments
            case 'expression_fragment' | 'paren_expr':
                return self.transform(_first(children, 'expr'))
            case 'declarations_fragment' | 'module_body':
                return self._declarations(children)
            case 'module_fragment':
                start = _first(children, 'KW_MODULE')
                body = _first(children, 'module_body')
                decls = self.transform(body) if body is not None else []
                name = _children(_first(children, 'module_name'))[0]['text']
                return ModuleDecl(name, decls, start['line'], start['col'])
            case 'type_fragment':
                return self._type_sig(children[0])

            # Declarations
            case 'declaration' | 'operand' | 'atom':
                return self.transform(children[0])
            case 'import_decl':
                name = _children(children[1])[0]['text']
                return Import(name, line, col)
            case 'signature':
                name = children[0]
                numeric, type_ = self._type_sig(children[2])
                return Signature(name['text'], type_, numeric, name['line'], name['col'])
            case 'strict_binding':
                name = children[1]
                return Binding(name['text'], [], self.transform(children[-1]), True, line, col)
            case 'binding':
                name = children[0]
                params = [c['text'] for c in children[1:-2]]
                return Binding(name['text'], params, self.transform(children[-1]), False,
                               name['line'], name['col'])

            # Expressions
            case 'expr':
                return self._operators(children)
            case 'if_expr':
                cond, then, orelse = (self.transform(c) for c in _all(children, 'expr'))
                return IfExpr(cond, then, orelse, line, col)
            case 'lambda_expr':
                params = [c['text'] for c in _all(children, 'VARID')]
                return Lambda(params, self.transform(children[-1]), line, col)
            case 'let_expr':
                name, *params = [c['text'] for c in _all(children, 'VARID')]
                value, body = (self.transform(c) for c in _all(children, 'expr'))
                return LetExpr(name, params, value, body, line, col)
            case 'negation':
                return Apply(Var("negate", line, col), self.transform(children[1]), line, col)
            case 'application':
                fn = self.transform(children[0])
                for child in children[1:]:
                    fn = Apply(fn, self.transform(child), fn.line, fn.col)
                return fn
            case 'unit' | 'type_unit':
                return Literal(None, line, col)
            case 'section':
                op = _children(children[1])[0]
                return Var(op['text'], op['line'], op['col'])
            case 'list_expr':
                items = _first(children, 'list_items')
                return ListExpr(self._list_items(items) if items is not None else [], line, col)

            # Tokens
            case 'INTEGER':
                return Literal(int(node['text']), line, col)
            case 'FLOAT':
                return Literal(float(node['text']), line, col)
            case 'STRING':
                return Literal(self._unescape(node), line, col)
            case 'VARID' | 'QVARID':
                return Var(node['text'], line, col)
            case 'CONID':
                if node['text'] in ("True", "False"):
                    return Literal(node['text'] == "True", line, col)
                raise self._error(f"unknown constructor '{node['text']}'", node)

        raise NotImplementedError(f"No transformer for tag '{tag}'")

    # --- declarations ---

    def _declarations(self, children: list) -> list:
        decls = []
        for child in children:
            if child['tag'] == 'declaration':
                decls.append(self.transform(child))
            elif child['tag'] == 'decl_more':
                decls.extend(self._declarations(_children(child)))
        return decls

    # --- types ---

    def _type_sig(self, node: dict) -> Tuple[List[str], TypeExpr]:
        """Returns (vars constrained by `Num a =>`, type)."""
        children = _children(node)
        context = _first(children, 'context')
        numeric = self._context(context) if context is not None else []
        return numeric, self._type(_first(children, 'type'))

    def _context(self, node: dict) -> List[str]:
        names = []

        def collect(n):
            for child in _children(n):
                if child['tag'] in ('CONID', 'VARID'):
                    names.append(child)
                elif 'children' in child:
                    collect(child)

        collect(node)
        numeric = []
        for cls, var in zip(names[::2], names[1::2]):
            if cls['text'] != "Num":
                raise self._error(f"unknown class '{cls['text']}'", cls)
            numeric.append(var['text'])
        return numeric

    def _type(self, node: dict) -> TypeExpr:
        children = _children(node)
        line, col = node.get('line', 0), node.get('col', 0)
        match node['tag']:
            case 'type':
                left = self._type(children[0])
                arrow = _first(children, 'type_arrow')
                if arrow is None:
                    return left
                tok, rest = _children(arrow)
                return TypeName("->", (left, self._type(rest)), tok['line'], tok['col'])
            case 'btype' | 'atype':
                return self._type(children[0])
            case 'type_app':
                return TypeName(children[0]['text'], tuple(self._type(c) for c in children[1:]), line, col)
            case 'type_paren':
                return self._type(_first(children, 'type'))
            case 'type_list':
                return TypeName("[]", (self._type(_first(children, 'type')),), line, col)
            case 'type_unit' | 'unit':
                return TypeName("()", (), line, col)
            case 'CONID':
                return TypeName(node['text'], (), line, col)
            case 'VARID':
                return TypeVarName(node['text'], line, col)
        raise NotImplementedError(f"No type transformer for tag '{node['tag']}'")

    # --- expressions ---

    def _list_items(self, node: dict) -> List[Expr]:
        items = []
        for child in _children(node):
            if child['tag'] == 'expr':
                items.append(self.transform(child))
            elif child['tag'] == 'list_more':
                items.extend(self._list_items(child))
        return items

    def _operators(self, children: list) -> Expr:
        operands = [self.transform(children[0])]
        ops = []
        for tail in children[1:]:
            binop, operand = _children(tail)
            ops.append(_children(binop)[0])
            operands.append(self.transform(operand))
        position = 0

        def climb(min_prec: int) -> Expr:
            nonlocal position
            left = operands[position]
            while position < len(ops):
                op = ops[position]
                prec, assoc = self.PRECEDENCE[op['text']]
                if prec < min_prec:
                    break
                position += 1
                right = climb(prec if assoc == "right" else prec + 1)
                fn = Var(op['text'], op['line'], op['col'])
                left = Apply(Apply(fn, left, op['line'], op['col']), right, op['line'], op['col'])
                if assoc == "none" and position < len(ops) and \
                        self.PRECEDENCE[ops[position]['text']][0] == prec:
                    raise self._error(f"operator '{op['text']}' is non-associative; expected parentheses",
                                      ops[position])
            return left

        return climb(0)

    def _unescape(self, node: dict) -> str:
        def replace(match):
            if match.group(1) not in _ESCAPES:
                raise self._error(f"invalid escape sequence '\\{match.group(1)}'", node)
            return _ESCAPES[match.group(1)]
        return _ESCAPE.sub(replace, node['text'][1:-1])
