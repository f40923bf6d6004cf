"""
Error types raised while parsing PVL labels and reading VICAR images.

Every error is a ``ValueError`` so callers that already guard label reads with
``except ValueError`` keep working.
"""

from __future__ import annotations


class PvlError(ValueError):
    """Base class for all label and pixel read failures."""


class PvlEofError(PvlError):
    """The cursor (or a byte read) moved past the available data."""

    def __init__(self, message: str = "Unexpected end of input") -> None:
        super().__init__(message)


class PvlSyntaxError(PvlError):
    """Malformed line structure."""


class CommentError(PvlSyntaxError):
    """Attempt to skip a comment when the cursor is not on one."""


class ProgrammingError(PvlError):
    """An operation was called in a state its precondition forbids.

    These point at control-flow bugs in the caller, not at bad input.
    """


class InvalidTypeError(PvlError):
    """Typed accessor does not match the inferred value type."""


class ValueTypeParseError(PvlError):
    """Text could not be converted to the requested native type."""


class UnexpectedEnumError(PvlError):
    """Text matched none of the recognized enumeration tokens."""


class PropertyNotFoundError(PvlError):
    """A required label field or object is absent."""


class UnsupportedFormatError(PvlError):
    """Pixel encoding or band layout that cannot be decoded or exported."""


class LabelError(PvlError):
    """I/O failure or a wrapped lower-level error."""
