"""
A printer for Mython runtime values.
"""
from typing import Any, TextIO

from mython.mython_datatypes import (
    Number, String, Bool, Class, ClassInstance, STR_METHOD
)


class Printer:
    """Formats Mython values the way `print` and `str` show them."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj: Any, context: Any = None) -> str:
        """Public entry point to format a value."""
        handler = self._get_handler(obj)
        return handler(obj, context)

    def write(self, obj: Any, stream: TextIO, context: Any = None) -> None:
        stream.write(self.pformat(obj, context))

    def _get_handler(self, obj):
        """Dispatcher to find the correct formatting method."""
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        # Subclasses of the runtime kinds
        for kind, handler in self._handlers.items():
            if isinstance(obj, kind):
                return handler
        # Default to Python's repr for unknown types
        return lambda o, c: repr(o)

    def _create_handlers(self):
        return {
            type(None): self._pformat_none,
            Number: self._pformat_primitive,
            String: self._pformat_primitive,
            Bool: self._pformat_bool,
            Class: self._pformat_class,
            ClassInstance: self._pformat_instance,
        }

    def _pformat_none(self, obj, context):
        return 'None'

    def _pformat_primitive(self, obj, context):
        return str(obj.value)

    def _pformat_bool(self, obj, context):
        return 'True' if obj.value else 'False'

    def _pformat_class(self, obj, context):
        return f"Class {obj.name}"

    def _pformat_instance(self, obj, context):
        # __str__ runs user code, so it needs a context to execute in.
        if context is not None and obj.has_method(STR_METHOD, 0):
            return self.pformat(obj.call(STR_METHOD, [], context), context)
        return f"<{obj.cls.name} object at {id(obj):#x}>"
