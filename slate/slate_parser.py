"""
Parses slate fragments with the koine grammar in grammar/slate_grammar.yaml.

A fragment is one of three things, and the grammar has an entry point for
each: a whole module (`module Name where ...`), a single expression, or a
block of top-level declarations. A fourth entry point parses the type of a
signature on its own, for host bindings. koine produces a generic tree that
SlateTransformer turns into the nodes in slate_datatypes.
"""
import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

from koine import Parser

from slate.slate_datatypes import Declaration, Diagnostic, Expr, ModuleDecl, TypeExpr, source_line
from slate.slate_errors import SourceError
from slate.slate_transformer import SlateTransformer, syntax_error

logger = logging.getLogger(__name__)

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "slate_grammar.yaml"

KEYWORDS = frozenset({"module", "where", "import", "if", "then", "else", "let", "in"})

# Lexes as the END token.
END_OF_INPUT = "\0"

_LOCATION = re.compile(r"at L(\d+):C(\d+)")
_UNEXPECTED_TOKEN = re.compile(r"Unexpected token '(\w+)' \('(.*?)'\) while parsing", re.S)
_UNEXPECTED_CHAR = re.compile(r"Unexpected character .*: '(.*)'$", re.S)
# Leading whitespace and comments, then the `module` keyword.
_MODULE_HEADER = re.compile(r"(?:\s|--[^\n]*|\{-.*?-\})*module\b", re.S)


def parse_diagnostic(message: str, source: str) -> Diagnostic:
    """Turns a koine error message into a ParseError diagnostic."""
    located = _LOCATION.search(message)
    line, col = (int(located.group(1)), int(located.group(2))) if located else (None, None)
    token = _UNEXPECTED_TOKEN.search(message)
    char = _UNEXPECTED_CHAR.search(message)
    if token is not None:
        match token.group(1):
            case "END":
                text = "unexpected end of input"
            case "NEWLINE":
                text = "unexpected end of line"
            case _:
                text = f"unexpected '{token.group(2)}'"
    elif char is not None:
        text = f"unexpected character '{char.group(1)}'"
    else:
        text = message
    return Diagnostic("ParseError", text, line, col, source_line(source, line))


class SlateParser:
    _parser: Optional[Parser] = None

    def __init__(self):
        if SlateParser._parser is None:
            logger.debug("Loading grammar %s", GRAMMAR_PATH)
            SlateParser._parser = Parser.from_file(str(GRAMMAR_PATH))
        self.parser = SlateParser._parser

    def parse(self, source: str, start_rule: str):
        if END_OF_INPUT in source:
            before = source[:source.index(END_OF_INPUT)]
            line = before.count("\n") + 1
            col = len(before) - (before.rfind("\n") + 1) + 1
            raise syntax_error(source, "unexpected character '\\0'", line, col)
        parse_out = self.parser.parse(source + END_OF_INPUT, start_rule=start_rule)
        if parse_out.get('status') != 'success':
            raise SourceError(parse_diagnostic(parse_out.get('message', ''), source))
        return SlateTransformer(source).transform(parse_out['ast'])


def is_module_source(source: str) -> bool:
    return _MODULE_HEADER.match(source) is not None


def parse_expression(source: str) -> Expr:
    return SlateParser().parse(source, "expression_fragment")


def parse_declarations(source: str) -> List[Declaration]:
    return SlateParser().parse(source, "declarations_fragment")


def parse_module(source: str) -> ModuleDecl:
    return SlateParser().parse(source, "module_fragment")


def parse_signature_type(source: str) -> Tuple[List[str], TypeExpr]:
    """Parses a signature type such as `Num a => a -> a`; returns (numeric vars, type)."""
    return SlateParser().parse(source, "type_fragment")
