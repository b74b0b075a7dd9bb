"""
Interactive evaluation sessions.

A session accumulates everything earlier fragments defined so that each new
fragment compiles against it. Host values are exposed to slate code through
a synthetic prelude module holding one reference cell per bound name; the
session rewrites that prelude and reloads it whenever a name is bound.

All session state lives in one immutable `SessionState`. Every operation
computes a new state from a snapshot and swaps it in at the end, so an
operation that fails (or is abandoned) commits nothing.
"""
import logging
import re
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple, Union

import pystache

from slate.slate_compiler import Interpreter
from slate.slate_config import Settings
from slate.slate_datatypes import (
    DefinitionsKind, ExpressionKind, Failure, InterpreterResult, ModuleKind, Success,
)
from slate.slate_errors import BindingError, CompilationError, EvaluationError, SourceError
from slate.slate_loader import ArtifactLoader
from slate.slate_parser import KEYWORDS, parse_signature_type
from slate.slate_runtime import StdLib

logger = logging.getLogger(__name__)

_BINDING_NAME = re.compile(r"^[a-z_][A-Za-z0-9_]*$")


# ===================================================================
# 1. Session state
# ===================================================================

@dataclass(frozen=True)
class SessionConfig:
    """Definitions submitted so far, newest first."""
    prior_definitions: Tuple[str, ...] = ()

    def with_definition(self, text: str) -> 'SessionConfig':
        return replace(self, prior_definitions=(text,) + self.prior_definitions)


@dataclass(frozen=True)
class Fresh:
    pass


@dataclass(frozen=True)
class Bound:
    count: int


Phase = Union[Fresh, Bound]


@dataclass(frozen=True)
class SessionState:
    config: SessionConfig
    loader: ArtifactLoader
    prelude: str
    # name -> host value, and name -> declared type. Never mutated; copied on change.
    bindings: Dict[str, Any] = field(default_factory=dict)
    binding_types: Dict[str, str] = field(default_factory=dict)
    reloads: int = 0

    @property
    def phase(self) -> Phase:
        return Bound(len(self.bindings)) if self.bindings else Fresh()


# ===================================================================
# 2. Binding declarations
# ===================================================================

class BindingTemplates:
    """
    Renders the slate source that exposes a host value to interpreted code.

    For `x :: Int` the session definitions gain

        x :: Int
        x = Ref.get xRef

    and the prelude module gains

        xRef :: Ref (Int)
        !xRef = Ref.new ()
    """

    CONFIG = "\n{{name}} :: {{type}}\n{{name}} = Ref.get {{name}}{{suffix}}\n"
    PRELUDE = "\n{{name}}{{suffix}} :: Ref ({{type}})\n!{{name}}{{suffix}} = Ref.new ()\n"
    IMPORT = "\nimport {{module}}\n"
    HEADER = "module {{module}} where\n"

    def __init__(self, prelude_module: str = "slate.Prelude", ref_suffix: str = "Ref"):
        self.prelude_module = prelude_module
        self.ref_suffix = ref_suffix
        # Types like `[a] -> Bool` must come through untouched.
        self._renderer = pystache.Renderer(escape=lambda u: u)

    def header(self) -> str:
        return self._renderer.render(self.HEADER, {"module": self.prelude_module})

    def import_prelude(self) -> str:
        return self._renderer.render(self.IMPORT, {"module": self.prelude_module})

    def cell_name(self, name: str) -> str:
        return name + self.ref_suffix

    def declarations(self, name: str, type_: str) -> Tuple[str, str]:
        """Returns (session definitions fragment, prelude fragment)."""
        data = {"name": name, "type": type_, "suffix": self.ref_suffix}
        return self._renderer.render(self.CONFIG, data), self._renderer.render(self.PRELUDE, data)


def split_binding_name(key: str, placeholder: str = "a") -> Tuple[str, str, bool]:
    """Splits `name::Type` into (name, type, type_was_given)."""
    if not isinstance(key, str):
        raise BindingError(f"binding name must be a string, got {type(key).__name__}")
    name, sep, type_ = key.partition("::")
    name, type_ = name.strip(), type_.strip()
    if not name:
        raise BindingError("binding name must not be empty")
    if not _BINDING_NAME.match(name) or name in KEYWORDS:
        raise BindingError(f"'{name}' is not a valid binding name")
    if sep and not type_:
        raise BindingError(f"missing type after '::' for '{name}'")
    if not sep:
        return name, placeholder, False
    if "\n" in type_:
        raise BindingError(f"type for '{name}' must be on one line")
    try:
        parse_signature_type(type_)
    except SourceError as e:
        raise BindingError(f"invalid type for '{name}': {e}") from e
    return name, type_, True


# ===================================================================
# 3. Dispatch and binding
# ===================================================================

def dispatch(result: InterpreterResult, state: SessionState, text: str,
             interpreter: Interpreter, templates: BindingTemplates) -> Tuple[Any, SessionState]:
    """Folds one classified result into the session; returns (value or None, new state)."""
    match result:
        case Failure(messages):
            raise CompilationError(result.render(), messages)
        case Success(kind=ModuleKind(name), state=compiled):
            logger.debug("Module %s loaded", name)
            return None, replace(state, loader=compiled.loader)
        case Success(kind=ExpressionKind(symbol), state=compiled):
            module = interpreter.symbol_module(symbol, compiled)
            field_name = interpreter.symbol_field(symbol, compiled)
            logger.debug("Reading %s.%s", module, field_name)
            try:
                # The loader is the one the fragment was compiled against; names
                # bound since then have no cell in its prelude.
                if state.bindings and compiled.loader.find(templates.prelude_module) is not None:
                    prelude = compiled.loader.load(templates.prelude_module)
                    for name, value in state.bindings.items():
                        cell = templates.cell_name(name)
                        if cell in prelude.artifact.symbols:
                            prelude.inject(cell, value)
                value = compiled.loader.load(module).read_field(field_name)
            except Exception as e:
                raise EvaluationError(f"{type(e).__name__}: {e}") from e
            return value, state
        case Success(kind=DefinitionsKind()):
            logger.debug("Definitions added to session")
            return None, replace(state, config=state.config.with_definition(text))
    raise TypeError(f"unexpected interpreter result {result!r}")


def bind_value(state: SessionState, key: str, value: Any, interpreter: Interpreter,
               templates: BindingTemplates, placeholder: str = "a") -> SessionState:
    """Binds a host value under `key` and reloads the prelude once; returns the new state."""
    name, type_, explicit = split_binding_name(key, placeholder)
    if name in state.bindings:
        known = state.binding_types[name]
        if explicit and type_ != known:
            raise BindingError(f"'{name}' is already bound with type '{known}', not '{type_}'")

    try:
        if name in state.bindings:
            candidate = replace(state, bindings={**state.bindings, name: value})
        else:
            config_fragment, prelude_fragment = templates.declarations(name, type_)
            config = state.config
            if not state.bindings:
                config = config.with_definition(templates.import_prelude())
            candidate = replace(
                state,
                config=config.with_definition(config_fragment),
                prelude=state.prelude + prelude_fragment,
                bindings={**state.bindings, name: value},
                binding_types={**state.binding_types, name: type_},
            )
        result = interpreter.run(interpreter.interpret(candidate.prelude), SessionConfig(), candidate.loader)
        if isinstance(result, Success) and not isinstance(result.kind, ModuleKind):
            raise BindingError("prelude did not compile to a module")
        _, reloaded = dispatch(result, candidate, candidate.prelude, interpreter, templates)
    except BindingError:
        raise
    except Exception as e:
        raise BindingError(f"could not bind '{name}': {e}") from e

    logger.info("Bound %s :: %s (prelude reload %d)", name, state.binding_types.get(name, type_),
                state.reloads + 1)
    return replace(reloaded, reloads=state.reloads + 1)


# ===================================================================
# 4. Host surface
# ===================================================================

class Session:
    """
    One interactive evaluation session.

    Usage:
        session = create_session()
        session.evaluate("40 + 2")          # 42
        session.bind("x::Int", 10)
        session.evaluate("double n = n * 2")
        session.evaluate("double x")        # 20
    """

    def __init__(self, settings: Optional[Settings] = None,
                 templates: Optional[BindingTemplates] = None,
                 stdlib: Optional[StdLib] = None):
        self.settings = settings or Settings()
        self.stdlib = stdlib or StdLib()
        self.interpreter = Interpreter(self.settings, type(self.stdlib))
        self.templates = templates or BindingTemplates(self.settings.prelude.module,
                                                       self.settings.prelude.ref_suffix)
        self._lock = threading.RLock()
        self._state = SessionState(SessionConfig(), ArtifactLoader(self.stdlib.namespace()),
                                   self.templates.header())

    @property
    def state(self) -> SessionState:
        return self._state

    def evaluate(self, text: str):
        """Evaluates one fragment; returns the value of an expression, otherwise None.

        `stdlib.side_effects` holds only what this call emitted.
        """
        with self._lock:
            self.stdlib.side_effects.clear()
            state = self._state
            program = self.interpreter.interpret(text)
            result = self.interpreter.run(program, state.config, state.loader)
            value, self._state = dispatch(result, state, text, self.interpreter, self.templates)
            return value

    def evaluate_stream(self, stream):
        return self.evaluate(stream.read())

    def compile(self, text: str) -> 'CompiledFragment':
        """Compiles a fragment against the current state without committing anything."""
        with self._lock:
            state = self._state
            program = self.interpreter.interpret(text)
            return CompiledFragment(self, text, self.interpreter.run(program, state.config, state.loader))

    def bind(self, key: str, value: Any):
        with self._lock:
            self._state = bind_value(self._state, key, value, self.interpreter, self.templates,
                                     self.settings.prelude.placeholder_type)

    def get(self, name: str, default: Any = None) -> Any:
        """Returns the host value bound under `name`."""
        return self._state.bindings.get(name, default)

    def definitions(self) -> Tuple[str, ...]:
        """Prior definitions in submission order."""
        return tuple(reversed(self._state.config.prior_definitions))


@dataclass(frozen=True)
class CompiledFragment:
    """A compiled fragment; `evaluate()` dispatches it against the session's state at that time."""
    session: Session
    text: str
    result: InterpreterResult

    def evaluate(self):
        session = self.session
        with session._lock:
            session.stdlib.side_effects.clear()
            value, session._state = dispatch(self.result, session._state, self.text,
                                             session.interpreter, session.templates)
            return value


class SessionFactory:
    """Describes the slate engine and creates sessions for it."""

    engine_name = "slate"
    language_name = "slate"
    names = ("slate",)
    extensions = ("slate",)
    mime_types = ("text/x-slate",)

    @property
    def engine_version(self) -> str:
        from slate import __version__
        return __version__

    language_version = engine_version

    def create_session(self, settings: Optional[Settings] = None) -> Session:
        return Session(settings=settings)


def create_session(settings: Optional[Settings] = None) -> Session:
    return SessionFactory().create_session(settings)
