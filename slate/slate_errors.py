"""
Exceptions raised by slate sessions and by the reference toolchain.

The three public kinds (CompilationError, EvaluationError, BindingError) are
what a host sees from a Session. They are all recoverable: the session keeps
its last committed state and stays usable.
"""
from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from slate.slate_datatypes import Diagnostic


class SlateError(Exception):
    """Base class for every error a session surfaces to its host."""


class CompilationError(SlateError):
    """The fragment failed to parse or type-check."""

    def __init__(self, message: str, diagnostics: Sequence['Diagnostic'] = ()):
        super().__init__(message)
        self.diagnostics = tuple(diagnostics)


class EvaluationError(SlateError):
    """Compilation succeeded but loading, injecting or reading a value failed."""


class BindingError(SlateError):
    """A host value could not be bound into the session."""


# --- toolchain internals ---

class SourceError(Exception):
    """Raised inside the parser and checker; carries one Diagnostic."""

    def __init__(self, diagnostic: 'Diagnostic'):
        super().__init__(diagnostic.message)
        self.diagnostic = diagnostic


class ArtifactNotFound(LookupError):
    def __init__(self, name: str):
        super().__init__(f"no artifact named '{name}'")
        self.name = name


class EmptyReferenceError(RuntimeError):
    """A reference cell was read before a value was injected into it."""
