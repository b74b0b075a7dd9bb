"""
A printer for slate runtime values.
"""
import collections.abc

from slate.slate_runtime import Lazy, Ref

_STRING_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\t": "\\t", "\r": "\\r", "\0": "\\0"}


class Printer:
    """Formats runtime values as slate source text."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if callable(obj):
            return self._pformat_function
        if isinstance(obj, collections.abc.Mapping):
            return self._pformat_mapping
        if isinstance(obj, (list, tuple)):
            return self._pformat_list
        # Host values of unknown type
        return repr

    def _create_handlers(self):
        return {
            str: self._pformat_str,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_bool,
            type(None): self._pformat_unit,
            list: self._pformat_list,
            Ref: self._pformat_ref,
            Lazy: self._pformat_lazy,
        }

    def _pformat_primitive(self, obj):
        return repr(obj)

    def _pformat_str(self, obj):
        return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in obj) + '"'

    def _pformat_bool(self, obj):
        return 'True' if obj else 'False'

    def _pformat_unit(self, obj):
        return '()'

    def _pformat_list(self, obj):
        return "[" + ", ".join(self.pformat(item) for item in obj) + "]"

    def _pformat_mapping(self, obj):
        items = ", ".join(f"{self.pformat(k)}: {self.pformat(v)}" for k, v in obj.items())
        return "{" + items + "}"

    def _pformat_ref(self, obj):
        return f"<ref {self.pformat(obj.get())}>" if obj.filled else "<ref>"

    def _pformat_lazy(self, obj):
        return self.pformat(obj.get())

    def _pformat_function(self, obj):
        return "<function>"
