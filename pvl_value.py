"""
PVL right-hand value typing.

A ``Value`` keeps the raw text found after ``=`` and the type inferred from it
once, at construction. Typed accessors convert the raw text on demand.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import numpy as np

from pvl_errors import InvalidTypeError, ValueTypeParseError

# ============================================================================
# Regex Patterns
# ============================================================================

# Order matters: the patterns overlap and the first match wins.
_BOOL_RE = re.compile(r'^"(TRUE|FALSE)"$')
_STRING_RE = re.compile(r'^".*"$', re.DOTALL)
_ARRAY_RE = re.compile(r"^\(.*\)$", re.DOTALL)
_FLOAT_RE = re.compile(r"^[+-]?[0-9]+\.[0-9]")
_BITMASK_RE = re.compile(r"^([1-8])#([01]+)#$")
# Digits glued to a letter (e.g. 8BIT) are flags or units, not integers.
_INTEGER_RE = re.compile(r"^[+-]?[0-9]+(?![0-9A-Za-z#])")
_FLAG_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Strict full-text forms used by the accessors.
_INT_TEXT_RE = re.compile(r"^[+-]?[0-9]+$")
_FLOAT_TEXT_RE = re.compile(
    r"^[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[Ee][+-]?[0-9]+)?|inf|infinity|nan)$",
    re.IGNORECASE,
)
_UNIT_RE = re.compile(r"^(.*?)\s*<\s*([^>]+?)\s*>$", re.DOTALL)


class ValueType(Enum):
    UNDETERMINED = "undetermined"
    ARRAY = "array"
    STRING = "string"
    FLOAT = "float"
    INTEGER = "integer"
    BOOL = "bool"
    FLAG = "flag"  # unquoted bare identifier
    BITMASK = "bitmask"


def determine_type(raw: str) -> ValueType:
    """Classify raw value text. Total: every input maps to exactly one type."""
    if _BOOL_RE.match(raw):
        return ValueType.BOOL
    if _STRING_RE.match(raw):
        return ValueType.STRING
    if _ARRAY_RE.match(raw):
        return ValueType.ARRAY
    if _FLOAT_RE.match(raw):
        return ValueType.FLOAT
    if _BITMASK_RE.match(raw):
        return ValueType.BITMASK
    if _INTEGER_RE.match(raw):
        return ValueType.INTEGER
    if _FLAG_RE.match(raw):
        return ValueType.FLAG
    return ValueType.UNDETERMINED


def _split_unit(raw: str) -> tuple[str, Optional[str]]:
    """Split a value from a trailing unit (e.g. '20.5 <ms>' -> ('20.5', 'ms'))."""
    m = _UNIT_RE.match(raw)
    if m:
        return m.group(1).strip(), m.group(2)
    return raw, None


def _int_parser(dtype: type) -> Callable[["Value"], int]:
    info = np.iinfo(dtype)

    def parse(self: "Value") -> int:
        n = self.parse_int()
        if not info.min <= n <= info.max:
            raise ValueTypeParseError(f"{self.raw!r} does not fit in {info.dtype}")
        return n

    parse.__doc__ = f"Parse as an integer that fits in {np.dtype(dtype).name}."
    return parse


@dataclass(frozen=True)
class Value:
    """A PVL right-hand value and its inferred type."""

    raw: str
    value_type: ValueType = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "value_type", determine_type(self.raw))

    def __str__(self) -> str:
        return self.raw

    def _check_type(self, expected: ValueType) -> None:
        # Undetermined values may still be parsed, at the caller's risk.
        if self.value_type not in (ValueType.UNDETERMINED, expected):
            raise InvalidTypeError(
                f"Cannot read {self.value_type.value} value {self.raw!r} as {expected.value}"
            )

    @property
    def unit(self) -> Optional[str]:
        return _split_unit(self.raw)[1]

    # ------------------------------------------------------------------------
    # Numeric accessors
    # ------------------------------------------------------------------------

    def parse_int(self) -> int:
        self._check_type(ValueType.INTEGER)
        text, _ = _split_unit(self.raw)
        if not _INT_TEXT_RE.match(text):
            raise ValueTypeParseError(f"{self.raw!r} is not an integer")
        return int(text)

    def parse_float(self) -> float:
        self._check_type(ValueType.FLOAT)
        text, _ = _split_unit(self.raw)
        if not _FLOAT_TEXT_RE.match(text):
            raise ValueTypeParseError(f"{self.raw!r} is not a float")
        return float(text)

    parse_u8 = _int_parser(np.uint8)
    parse_u16 = _int_parser(np.uint16)
    parse_u32 = _int_parser(np.uint32)
    parse_u64 = _int_parser(np.uint64)
    parse_usize = _int_parser(np.uint64)
    parse_i8 = _int_parser(np.int8)
    parse_i16 = _int_parser(np.int16)
    parse_i32 = _int_parser(np.int32)
    parse_i64 = _int_parser(np.int64)

    def parse_f32(self) -> float:
        return float(np.float32(self.parse_float()))

    def parse_f64(self) -> float:
        return self.parse_float()

    def parse_bitmask(self) -> int:
        """Parse ``<radix>#<bits>#`` into its integer value."""
        self._check_type(ValueType.BITMASK)
        m = _BITMASK_RE.match(self.raw)
        if not m or int(m.group(1)) < 2:
            raise ValueTypeParseError(f"{self.raw!r} is not a bit mask")
        return int(m.group(2), int(m.group(1)))

    # ------------------------------------------------------------------------
    # Text accessors
    # ------------------------------------------------------------------------

    def parse_bool(self) -> bool:
        self._check_type(ValueType.BOOL)
        text = self.raw.strip('"').upper()
        if text == "TRUE":
            return True
        if text == "FALSE":
            return False
        raise ValueTypeParseError(f"{self.raw!r} is not a boolean")

    def parse_flag(self) -> str:
        self._check_type(ValueType.FLAG)
        return self.raw

    def parse_string(self) -> str:
        self._check_type(ValueType.STRING)
        s = self.raw
        if len(s) >= 2 and s[0] == s[-1] == '"':
            return s[1:-1]
        return s

    def parse_array(self) -> list["Value"]:
        """Split an array value into element values.

        The split is flat: commas inside nested parentheses or quoted
        elements are not protected.
        """
        if self.value_type is not ValueType.ARRAY:
            raise InvalidTypeError(f"{self.raw!r} is not an array")
        inner = self.raw[1:-1]
        if not inner.strip():
            return []
        return [Value(part.strip()) for part in inner.split(",")]
