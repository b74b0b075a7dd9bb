"""
The interpreter/compiler the session core talks to.

`interpret()` parses and classifies a fragment without touching any
session state. `run()` type-checks the classified program against the
session's prior definitions and loader, generates Python for it and, where
the result is something to execute, returns a loader that can see it.
"""
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from slate.slate_codegen import generate
from slate.slate_config import Settings
from slate.slate_datatypes import (
    CompilerState, DefinitionsKind, Diagnostic, ExpressionKind, Failure,
    InterpreterResult, ModuleKind, Success, SymbolRef,
)
from slate.slate_errors import SourceError
from slate.slate_loader import Artifact, ArtifactLoader
from slate.slate_parser import (
    is_module_source, parse_declarations, parse_expression, parse_module, parse_signature_type,
)
from slate.slate_runtime import StdLib
from slate.slate_types import Builtin, Scheme, TypeChecker, scheme_from_syntax

logger = logging.getLogger(__name__)

EXPRESSION_RESULT = "expr_result"


@dataclass(frozen=True)
class Program:
    """A parsed and classified fragment.

    kind is 'module', 'expression', 'definitions' or 'invalid'; an invalid
    program carries the diagnostics of the parse that got furthest.
    """
    text: str
    kind: str
    tree: Any = None
    diagnostics: Tuple[Diagnostic, ...] = ()


def builtin_environment(stdlib_cls=StdLib) -> Dict[str, Tuple[Scheme, Builtin]]:
    env = {}
    for name, signature, attr in stdlib_cls.signatures():
        numeric, texpr = parse_signature_type(signature)
        env[name] = (scheme_from_syntax(texpr, numeric, signature), Builtin(attr, name))
    return env


def _position(diag: Diagnostic) -> Tuple[int, int]:
    return (diag.line or 0, diag.col or 0)


class Interpreter:
    def __init__(self, settings: Optional[Settings] = None, stdlib_cls=StdLib):
        self.settings = settings or Settings()
        self.builtins = builtin_environment(stdlib_cls)

    # --- classification ---

    def interpret(self, text: str) -> Program:
        if is_module_source(text):
            try:
                tree = parse_module(text)
            except SourceError as e:
                return Program(text, "invalid", diagnostics=(e.diagnostic,))
            logger.debug("Classified fragment as module %s", tree.name)
            return Program(text, "module", tree)

        errors = []
        for kind, entry in (("expression", parse_expression), ("definitions", parse_declarations)):
            try:
                tree = entry(text)
            except SourceError as e:
                errors.append(e.diagnostic)
                continue
            logger.debug("Classified fragment as %s", kind)
            return Program(text, kind, tree)
        # max() keeps the first of equal positions, so expression errors win ties.
        furthest = max(errors, key=_position)
        return Program(text, "invalid", diagnostics=(furthest,))

    # --- compilation ---

    def run(self, program: Program, config, loader: ArtifactLoader) -> InterpreterResult:
        match program.kind:
            case "invalid":
                return Failure(program.diagnostics)
            case "module":
                return self._run_module(program, loader)
            case "definitions":
                return self._run_definitions(program, config, loader)
            case "expression":
                return self._run_expression(program, config, loader)
        raise ValueError(f"unknown program kind '{program.kind}'")

    def _checker(self, module: str, loader: ArtifactLoader) -> TypeChecker:
        return TypeChecker(module, self.builtins, loader, self.settings.compiler.max_errors)

    def _with_prior(self, module: str, config, loader: ArtifactLoader) -> TypeChecker:
        """A checker that has already seen every prior definition, oldest first."""
        checker = self._checker(module, loader)
        for text in reversed(config.prior_definitions):
            try:
                decls = parse_declarations(text)
            except SourceError as e:
                checker.diagnostics.append(e.diagnostic)
                break
            checker.check_declarations(decls, text)
            if checker.diagnostics:
                break
        return checker

    def _script_name(self, config, text: str) -> str:
        digest = hashlib.sha1()
        for prior in config.prior_definitions:
            digest.update(prior.encode("utf-8"))
            digest.update(b"\0")
        digest.update(text.encode("utf-8"))
        return f"{self.settings.compiler.script_prefix}_{digest.hexdigest()[:10]}"

    def _artifact(self, module: str, checker: TypeChecker) -> Artifact:
        source = generate(module, checker.definitions, checker.imports)
        return Artifact.build(module, source, checker.symbols)

    def _run_module(self, program: Program, loader: ArtifactLoader) -> InterpreterResult:
        name = program.tree.name
        checker = self._checker(name, loader)
        checker.check_declarations(program.tree.decls, program.text)
        if checker.diagnostics:
            return Failure(tuple(checker.diagnostics))
        artifact = self._artifact(name, checker)
        return Success(ModuleKind(name),
                       CompilerState(name, checker.symbols, loader.define(artifact), artifact.source))

    def _run_definitions(self, program: Program, config, loader: ArtifactLoader) -> InterpreterResult:
        name = self._script_name(config, program.text)
        checker = self._with_prior(name, config, loader)
        if not checker.diagnostics:
            checker.check_declarations(program.tree, program.text)
        if checker.diagnostics:
            return Failure(tuple(checker.diagnostics))
        return Success(DefinitionsKind(), CompilerState(name, checker.symbols, loader))

    def _run_expression(self, program: Program, config, loader: ArtifactLoader) -> InterpreterResult:
        name = self._script_name(config, program.text)
        checker = self._with_prior(name, config, loader)
        if not checker.diagnostics:
            checker.check_expression(program.tree, program.text, EXPRESSION_RESULT, EXPRESSION_RESULT)
        if checker.diagnostics:
            return Failure(tuple(checker.diagnostics))
        artifact = self._artifact(name, checker)
        symbol = SymbolRef(name, EXPRESSION_RESULT)
        return Success(ExpressionKind(symbol),
                       CompilerState(name, checker.symbols, loader.define(artifact), artifact.source))

    # --- symbol resolution ---

    def symbol_module(self, symbol: SymbolRef, state: CompilerState) -> str:
        return symbol.module

    def symbol_field(self, symbol: SymbolRef, state: CompilerState) -> str:
        return state.symbols[symbol.name].field

    def type_of(self, symbol: SymbolRef, state: CompilerState) -> str:
        return state.symbols[symbol.name].scheme.show()
