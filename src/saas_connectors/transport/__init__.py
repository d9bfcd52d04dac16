"""
HTTP transport helpers: URL composition, response envelopes, error
interpretation and the JSON client wrapping the caller's ``httpx.Client``.
"""

from .client import JSONHTTPClient
from .interpreter import ErrorFormat, ErrorInterpreter, FormatSwitch, status_to_tag
from .response import JSONHTTPResponse
from .urlbuilder import URL, URLParseError, new_url

__all__ = [
    "JSONHTTPClient",
    "ErrorFormat",
    "ErrorInterpreter",
    "FormatSwitch",
    "status_to_tag",
    "JSONHTTPResponse",
    "URL",
    "URLParseError",
    "new_url",
]
