"""Exception hierarchy and error codes.

Examples
--------
>>> from autometrics_gen.errors import ConfigError, ErrorCode
>>> try:
...     raise ConfigError("target percentage set without a service name")
... except ConfigError as e:
...     assert e.code == ErrorCode.INVALID_CONFIGURATION
"""

from __future__ import annotations

from autometrics_gen.errors.codes import BASE_TYPE_URI, ErrorCode, get_type_uri
from autometrics_gen.errors.exceptions import (
    ConfigError,
    DirectiveError,
    DocumentationRegionError,
    GeneratorError,
    ParseError,
    ReturnValueError,
    SignatureError,
    SourceIOError,
)

__all__ = [
    "BASE_TYPE_URI",
    "ConfigError",
    "DirectiveError",
    "DocumentationRegionError",
    "ErrorCode",
    "GeneratorError",
    "ParseError",
    "ReturnValueError",
    "SignatureError",
    "SourceIOError",
    "get_type_uri",
]
