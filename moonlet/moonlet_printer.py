"""
A printer for moonlet runtime values.
"""
from moonlet.moonlet_datatypes import LuaFunction, MultiValue, Environment


class Printer:
    """Formats runtime values the way scripts see them (`print`, `tostring`, `..`)."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a value."""
        return self._get_handler(obj)(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if callable(obj):
            return self._pformat_builtin
        return repr

    def _create_handlers(self):
        return {
            type(None): self._pformat_nil,
            bool: self._pformat_bool,
            int: self._pformat_number,
            float: self._pformat_number,
            str: str,
            LuaFunction: self._pformat_function,
            MultiValue: self._pformat_multi,
            Environment: repr,
        }

    def _pformat_nil(self, obj):
        return "nil"

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_number(self, obj):
        # %.14g: integral floats print without a fraction.
        return format(float(obj), ".14g")

    def _pformat_function(self, obj):
        return f"function: {obj.name} 0x{id(obj):08x}"

    def _pformat_builtin(self, obj):
        name = getattr(obj, "__name__", "") or ""
        name = name.lstrip("_") or "builtin"
        return f"function: builtin: {name}"

    def _pformat_multi(self, obj):
        return " ".join(self.pformat(v) for v in obj)


def to_text(value) -> str:
    return Printer().pformat(value)
