"""Typed exception hierarchy for the source rewriter.

All generator exceptions inherit from GeneratorError, which carries a stable
error code and a context mapping (file, function, directive) that the CLI
prints before exiting.

Examples
--------
>>> from autometrics_gen.errors import DirectiveError, ErrorCode
>>> try:
...     raise DirectiveError("--slo expects a value", context={"function": "main"})
... except DirectiveError as e:
...     assert e.code == ErrorCode.INVALID_DIRECTIVE
...     assert e.to_dict()["context"] == {"function": "main"}
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from autometrics_gen.errors.codes import ErrorCode, get_type_uri

__all__ = [
    "ConfigError",
    "DirectiveError",
    "DocumentationRegionError",
    "GeneratorError",
    "ParseError",
    "ReturnValueError",
    "SignatureError",
    "SourceIOError",
]


class GeneratorError(Exception):
    """Base exception for all generator errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.INVALID_CONFIGURATION``.
    log_level : int, optional
        Level used when the error is logged. Defaults to ``logging.ERROR``.
    cause : Exception | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context (file, function, directive). Defaults to None.

    Attributes
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode
        Error code enum value.
    log_level : int
        Logging level for error logging.
    context : dict[str, object]
        Additional context dictionary for error details.
    """

    default_code: ErrorCode = ErrorCode.INVALID_CONFIGURATION

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        log_level: int = logging.ERROR,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.log_level = log_level
        self.context: dict[str, object] = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **fields: object) -> GeneratorError:
        """Add context fields that are not already set and return ``self``.

        Lets outer layers annotate an error raised deeper down (for example
        the rewriter adding the file path) without overwriting what the
        raising site already recorded.

        Parameters
        ----------
        **fields : object
            Context fields to merge.

        Returns
        -------
        GeneratorError
            This error, for use in ``raise error.with_context(...)``.
        """
        for key, value in fields.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable description of the error.

        Returns
        -------
        dict[str, object]
            Mapping with ``type``, ``title``, ``code``, ``detail`` and ``context``.
        """
        return {
            "type": get_type_uri(self.code),
            "title": self.__class__.__name__,
            "code": self.code.value,
            "detail": self.message,
            "context": {key: str(value) for key, value in self.context.items()},
        }

    def __str__(self) -> str:
        """Return formatted error string.

        Returns
        -------
        str
            Formatted error string (e.g., "ParseError[parse-error]: syntax error at 3:1").
        """
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class ParseError(GeneratorError):
    """Raised when the Go source does not parse."""

    default_code = ErrorCode.PARSE_ERROR


class DirectiveError(GeneratorError):
    """Raised for a malformed directive comment.

    Covers missing flag values, non-numeric values, unbalanced quotes, and
    directives placed on functions that cannot be instrumented.
    """

    default_code = ErrorCode.INVALID_DIRECTIVE


class ConfigError(GeneratorError):
    """Raised when a configuration violates an invariant.

    Examples are an objective without a service name, a percentage outside
    (0, 100), or a latency target off the histogram bucket boundaries.
    """

    default_code = ErrorCode.INVALID_CONFIGURATION


class DocumentationRegionError(GeneratorError):
    """Raised for unbalanced, duplicated or reversed documentation cookies."""

    default_code = ErrorCode.INVALID_DOC_REGION


class SignatureError(GeneratorError):
    """Raised when a parameter type has a shape the analyzer cannot classify."""

    default_code = ErrorCode.UNSUPPORTED_SIGNATURE


class ReturnValueError(GeneratorError):
    """Raised when a function declares more than one named ``error`` result."""

    default_code = ErrorCode.AMBIGUOUS_ERROR_RETURN


class SourceIOError(GeneratorError):
    """Raised when the source file cannot be read or written back."""

    default_code = ErrorCode.IO_ERROR
