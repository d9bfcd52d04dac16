"""
Typed navigation over parsed JSON documents.

A :class:`Query` is created from a node (the result of :func:`json.loads`)
and an optional *zoom* path. Each extractor takes one more key (``""`` selects
the zoomed node itself) and either requires the value or treats it as
optional. Optional lookups relax *presence* only: a missing key or a JSON
``null`` yields ``None``, while a value of the wrong shape still fails.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ConnectorError, ErrorTag


class JSONQueryError(ConnectorError):
    """Base error for JSON navigation failures."""

    default_message = "unexpected JSON shape"

    def __init__(self, key: str = "", message: Optional[str] = None) -> None:
        detail = message or self.default_message
        if key:
            detail = f"{detail} (key '{key}')"
        super().__init__(ErrorTag.PARSE_ERROR, detail)
        self.key = key


class KeyNotFound(JSONQueryError):
    default_message = "key not found"


class NullJSON(JSONQueryError):
    default_message = "value of JSON key is null"


class NotObject(JSONQueryError):
    default_message = "JSON value is not an object"


class NotArray(JSONQueryError):
    default_message = "JSON value is not an array"


class NotString(JSONQueryError):
    default_message = "JSON value is not a string"


class NotNumeric(JSONQueryError):
    default_message = "JSON value is not a number"


class NotInteger(JSONQueryError):
    default_message = "JSON value is not an integer"


class NotBool(JSONQueryError):
    default_message = "JSON value is not a boolean"


_MISSING = object()


class Query:
    """
    Typed accessor for a JSON node.

    Parameters
    ----------
    node:
        Parsed JSON value, usually a ``dict``.
    zoom:
        Keys navigated before the extractor's own key is applied.
    """

    __slots__ = ("node", "zoom")

    def __init__(self, node: Any, *zoom: str) -> None:
        self.node = node
        self.zoom: Sequence[str] = zoom

    def _lookup(self, key: str, optional: bool) -> Any:
        current = self.node
        path = [*self.zoom, key] if key else list(self.zoom)
        for segment in path:
            if current is None:
                if optional:
                    return _MISSING
                raise NullJSON(segment)
            if not isinstance(current, Mapping):
                raise NotObject(segment)
            if segment not in current:
                if optional:
                    return _MISSING
                raise KeyNotFound(segment)
            current = current[segment]
        return current

    def _resolve(self, key: str, optional: bool) -> Any:
        value = self._lookup(key, optional)
        if value is _MISSING:
            return _MISSING
        if value is None:
            if optional:
                return _MISSING
            raise NullJSON(key)
        return value

    def object(self, key: str, optional: bool = False) -> Optional[Dict[str, Any]]:
        value = self._resolve(key, optional)
        if value is _MISSING:
            return None
        if not isinstance(value, dict):
            raise NotObject(key)
        return value

    def array(self, key: str, optional: bool = False) -> Optional[List[Any]]:
        value = self._resolve(key, optional)
        if value is _MISSING:
            return None
        if not isinstance(value, list):
            raise NotArray(key)
        return value

    def string(self, key: str, optional: bool = False) -> Optional[str]:
        value = self._resolve(key, optional)
        if value is _MISSING:
            return None
        if not isinstance(value, str):
            raise NotString(key)
        return value

    def integer(self, key: str, optional: bool = False) -> Optional[int]:
        value = self._resolve(key, optional)
        if value is _MISSING:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise NotNumeric(key)
        if isinstance(value, float):
            if not value.is_integer():
                raise NotInteger(key)
            return int(value)
        return value

    def boolean(self, key: str, optional: bool = False) -> Optional[bool]:
        value = self._resolve(key, optional)
        if value is _MISSING:
            return None
        if not isinstance(value, bool):
            raise NotBool(key)
        return value

    def string_with_default(self, key: str, default: str) -> str:
        value = self.string(key, optional=True)
        return default if value is None else value

    def integer_with_default(self, key: str, default: int) -> int:
        value = self.integer(key, optional=True)
        return default if value is None else value

    def boolean_with_default(self, key: str, default: bool) -> bool:
        value = self.boolean(key, optional=True)
        return default if value is None else value


def array_to_maps(items: Optional[Sequence[Any]]) -> List[Dict[str, Any]]:
    """Ensure every array element is an object and return them as dictionaries."""

    result: List[Dict[str, Any]] = []
    for index, item in enumerate(items or ()):
        if not isinstance(item, dict):
            raise NotObject(str(index))
        result.append(item)
    return result


def object_to_map(node: Any) -> Dict[str, Any]:
    if not isinstance(node, dict):
        raise NotObject()
    return node


def node_from_map(data: Mapping[str, Any]) -> Any:
    """Round-trip a Python mapping through JSON to obtain a detached JSON node."""

    try:
        return json.loads(json.dumps(data))
    except (TypeError, ValueError) as exc:
        raise JSONQueryError(message=f"value is not JSON serialisable: {exc}") from exc
