"""
Compiled artifacts and the loaders that execute them.

A loader owns a set of artifacts and an optional parent. Lookup is
child-first, so defining an artifact in a child loader shadows the parent's
artifact of the same name without disturbing anyone still holding the
parent. Each loader executes an artifact at most once and caches the result.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from slate.slate_errors import ArtifactNotFound
from slate.slate_runtime import Lazy, Ref, force

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """One compiled module: its Python source, code object and exported symbols."""
    name: str
    source: str
    code: Any
    symbols: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, name: str, source: str, symbols: Dict[str, Any]) -> 'Artifact':
        return cls(name, source, compile(source, f"<slate:{name}>", "exec"), dict(symbols))


class LoadedModule:
    """An executed artifact; fields are the Python names the code generator chose."""

    def __init__(self, artifact: Artifact, namespace: Dict[str, Any]):
        self.artifact = artifact
        self.namespace = namespace

    @property
    def name(self) -> str:
        return self.artifact.name

    def field_name(self, symbol_name: str) -> str:
        sym = self.artifact.symbols.get(symbol_name)
        if sym is None:
            raise KeyError(f"module '{self.name}' has no symbol '{symbol_name}'")
        return sym.field

    def read_field(self, field_name: str):
        if field_name not in self.namespace:
            raise KeyError(f"module '{self.name}' has no field '{field_name}'")
        return force(self.namespace[field_name])

    def write_field(self, field_name: str, value):
        """Stores `value` in a field; a field holding a reference cell gets the value written into the cell."""
        current = self.namespace.get(field_name)
        if isinstance(current, Lazy) and isinstance(current.get(), Ref):
            current.get().set(value)
        elif isinstance(current, Ref):
            current.set(value)
        else:
            self.namespace[field_name] = Lazy.of(value)

    def inject(self, symbol_name: str, value):
        """Writes a host value into the reference cell named `symbol_name`."""
        field_name = self.field_name(symbol_name)
        if not isinstance(self.read_field(field_name), Ref):
            raise TypeError(f"'{symbol_name}' in module '{self.name}' is not a reference cell")
        self.write_field(field_name, value)

    def __repr__(self):
        return f"<LoadedModule {self.name}>"


class ArtifactLoader:
    def __init__(self, runtime: Any, artifacts=(), parent: Optional['ArtifactLoader'] = None):
        self.runtime = runtime
        self.parent = parent
        self._artifacts: Dict[str, Artifact] = {a.name: a for a in artifacts}
        self._loaded: Dict[str, LoadedModule] = {}
        self._lock = threading.RLock()

    def find(self, name: str) -> Optional[Artifact]:
        if name in self._artifacts:
            return self._artifacts[name]
        return self.parent.find(name) if self.parent is not None else None

    def define(self, *artifacts: Artifact) -> 'ArtifactLoader':
        """Returns a child loader that sees `artifacts` ahead of everything this loader sees.

        The child keeps this loader alive through `parent`, shadowed artifacts
        and their loaded instances included. A session defines one child per
        bind and per module, so a long-lived session holds every earlier
        prelude instance; start a new session to release them.
        """
        return ArtifactLoader(self.runtime, artifacts, parent=self)

    def names(self) -> set:
        names = set(self.parent.names()) if self.parent is not None else set()
        return names | set(self._artifacts)

    def load(self, name: str) -> LoadedModule:
        with self._lock:
            if name in self._loaded:
                return self._loaded[name]
            artifact = self._artifacts.get(name)
            if artifact is None:
                if self.parent is None:
                    raise ArtifactNotFound(name)
                return self.parent.load(name)
            namespace = {"__name__": f"slate.compiled.{name}", "_rt": self.runtime, "_load": self.load}
            module = LoadedModule(artifact, namespace)
            self._loaded[name] = module
            try:
                exec(artifact.code, namespace)
            except BaseException:
                del self._loaded[name]
                raise
            logger.debug("Instantiated artifact %s", name)
            return module
