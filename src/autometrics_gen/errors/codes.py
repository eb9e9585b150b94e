"""Error code registry for generator failures.

Codes are kebab-case and stable: they appear in the JSON error payloads the
CLI prints and in the ``status`` label of the generator metrics.

Examples
--------
>>> from autometrics_gen.errors.codes import ErrorCode, get_type_uri
>>> get_type_uri(ErrorCode.INVALID_DIRECTIVE)
'urn:autometrics-gen:problem:invalid-directive'
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "BASE_TYPE_URI",
    "ErrorCode",
    "get_type_uri",
]


BASE_TYPE_URI: Final[str] = "urn:autometrics-gen:problem"


class ErrorCode(StrEnum):
    """Stable error codes for generator exceptions.

    Attributes
    ----------
    PARSE_ERROR
        The Go source file does not parse.
    INVALID_DIRECTIVE
        A directive comment is malformed.
    INVALID_CONFIGURATION
        An instrumentation or process configuration violates an invariant.
    INVALID_DOC_REGION
        Generated documentation cookies are unbalanced or reversed.
    UNSUPPORTED_SIGNATURE
        A parameter type cannot be classified.
    AMBIGUOUS_ERROR_RETURN
        A function declares more than one named ``error`` result.
    IO_ERROR
        The source file cannot be read or written.
    """

    PARSE_ERROR = "parse-error"
    INVALID_DIRECTIVE = "invalid-directive"
    INVALID_CONFIGURATION = "invalid-configuration"
    INVALID_DOC_REGION = "invalid-doc-region"
    UNSUPPORTED_SIGNATURE = "unsupported-signature"
    AMBIGUOUS_ERROR_RETURN = "ambiguous-error-return"
    IO_ERROR = "io-error"

    def __str__(self) -> str:
        """Return the code value as a string.

        Returns
        -------
        str
            The error code value (e.g., "parse-error").
        """
        return self.value


def get_type_uri(code: ErrorCode) -> str:
    """Return the problem type URI for an error code.

    Parameters
    ----------
    code : ErrorCode
        Error code enum value.

    Returns
    -------
    str
        Type URI (e.g., "urn:autometrics-gen:problem:parse-error").
    """
    return f"{BASE_TYPE_URI}:{code.value}"
