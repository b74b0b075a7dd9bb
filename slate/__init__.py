__version__ = "0.1.0"

from slate.slate_config import Settings, load_settings
from slate.slate_errors import BindingError, CompilationError, EvaluationError, SlateError
from slate.slate_runtime import ExecutionResult, ScriptRunner
from slate.slate_session import Session, SessionFactory, create_session

__all__ = [
    "BindingError", "CompilationError", "EvaluationError", "ExecutionResult", "ScriptRunner",
    "Session", "SessionFactory", "Settings", "SlateError", "create_session", "load_settings",
]
