"""
PVL (Parameter Value Language) label scanner and parser.

Provides:
- A character cursor over label text (PvlScanner) that recognizes symbols,
  comments, blank lines and value continuation lines
- GROUP/OBJECT block parsing into Group and Object containers
- The Pvl document: top-level properties, groups and objects

Labels are parsed line by line from the cursor position; there is no separate
tokenizer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import ClassVar, Optional

from pvl_errors import (
    CommentError,
    LabelError,
    ProgrammingError,
    PvlEofError,
    PvlSyntaxError,
)
from pvl_value import Value

logger = logging.getLogger(__name__)

# A line starting with exactly this many spaces continues the previous value.
LINE_CONTINUATION_WIDTH = 37
LINE_CONTINUATION_PREFIX = " " * LINE_CONTINUATION_WIDTH

# How far ahead a blank-line check looks for a non-space character.
BLANK_LINE_LOOKAHEAD = 100

# ============================================================================
# Symbols and Properties
# ============================================================================


class SymbolKind(Enum):
    POINTER = "pointer"
    KEY = "key"
    GROUP = "group"
    OBJECT = "object"
    BLANK_LINE = "blank_line"
    GROUP_END = "group_end"
    OBJECT_END = "object_end"
    END = "end"


_RESERVED_SYMBOLS = {
    "GROUP": SymbolKind.GROUP,
    "OBJECT": SymbolKind.OBJECT,
    "END_GROUP": SymbolKind.GROUP_END,
    "END_OBJECT": SymbolKind.OBJECT_END,
    "END": SymbolKind.END,
}


@dataclass(frozen=True)
class Symbol:
    """Left-hand side of a label line. Only KEY and POINTER carry a name."""

    kind: SymbolKind
    name: Optional[str] = None

    @classmethod
    def classify(cls, text: str) -> "Symbol":
        text = text.strip()
        if not text:
            return cls(SymbolKind.BLANK_LINE)
        if text.startswith("^"):
            return cls(SymbolKind.POINTER, text)
        kind = _RESERVED_SYMBOLS.get(text)
        if kind is not None:
            return cls(kind)
        return cls(SymbolKind.KEY, text)

    def matches(self, name: str) -> bool:
        return self.kind in (SymbolKind.KEY, SymbolKind.POINTER) and self.name == name


@dataclass(frozen=True)
class KeyValuePair:
    key: Symbol
    value: Value


def _find_property(properties: list[KeyValuePair], name: str) -> Optional[KeyValuePair]:
    return next((p for p in properties if p.key.matches(name)), None)


@dataclass
class PropertyGrouping:
    """Shared shape of GROUP and OBJECT blocks.

    Nested blocks are kept in ``groups``/``objects``; the block start and end
    marker lines are never stored as properties.
    """

    KIND: ClassVar[SymbolKind]

    name: str
    properties: list[KeyValuePair] = field(default_factory=list)
    groups: list["Group"] = field(default_factory=list)
    objects: list["Object"] = field(default_factory=list)

    def type_of(self) -> SymbolKind:
        return self.KIND

    def get_property(self, name: str) -> Optional[KeyValuePair]:
        return _find_property(self.properties, name)

    def has_property(self, name: str) -> bool:
        return self.get_property(name) is not None

    def get_group(self, name: str) -> Optional["Group"]:
        return next((g for g in self.groups if g.name == name), None)

    def get_object(self, name: str) -> Optional["Object"]:
        return next((o for o in self.objects if o.name == name), None)


@dataclass
class Group(PropertyGrouping):
    KIND: ClassVar[SymbolKind] = SymbolKind.GROUP


@dataclass
class Object(PropertyGrouping):
    KIND: ClassVar[SymbolKind] = SymbolKind.OBJECT


# ============================================================================
# Scanner
# ============================================================================


def _is_open_value(text: str) -> bool:
    """True while a quoted string or a (...)/{...} value is still unclosed."""
    if text.count('"') % 2 == 1:
        return True
    if text.startswith("("):
        return text.count("(") > text.count(")")
    if text.startswith("{"):
        return text.count("{") > text.count("}")
    return False


# ``KEY =`` or ``^POINTER =`` at the head of a line.
_ASSIGNMENT_RE = re.compile(r"^\^?[A-Za-z_][A-Za-z0-9_:]*\s*=")

_STATEMENT_KINDS = (
    SymbolKind.GROUP,
    SymbolKind.OBJECT,
    SymbolKind.GROUP_END,
    SymbolKind.OBJECT_END,
    SymbolKind.END,
)


class PvlScanner:
    """Cursor over PVL label text.

    Carriage returns are dropped on construction, so ``\\n`` is the only line
    terminator the scanner has to handle.
    """

    def __init__(self, content: str) -> None:
        self.content = content.replace("\r", "")
        self.pos = 0

    # ------------------------------------------------------------------------
    # Character access
    # ------------------------------------------------------------------------

    def char_at(self, index: int) -> str:
        if index < 0 or index >= len(self.content):
            raise PvlEofError(f"Read past end of label at index {index}")
        return self.content[index]

    def char_at_offset(self, n: int) -> str:
        return self.char_at(self.pos + n)

    def current_char(self) -> str:
        return self.char_at(self.pos)

    def peek_char(self) -> str:
        return self.char_at(self.pos + 1)

    def next_char(self) -> str:
        self.pos += 1
        return self.current_char()

    def is_eof(self) -> bool:
        return self.pos >= len(self.content)

    def has_remaining(self, n: int) -> bool:
        return self.pos + n <= len(self.content)

    def jump(self, num_chars: int) -> None:
        """Move forward, stopping at end of input."""
        if self.is_eof():
            raise PvlEofError()
        self.pos = min(self.pos + num_chars, len(self.content))

    def is_at_pointer(self) -> bool:
        return self.current_char() == "^"

    def is_at_equals(self) -> bool:
        return self.current_char() == "="

    # ------------------------------------------------------------------------
    # Line structure
    # ------------------------------------------------------------------------

    def is_at_line_start(self) -> bool:
        if self.pos > len(self.content):
            raise PvlEofError()
        return self.pos == 0 or self.content[self.pos - 1] == "\n"

    def _line_end(self) -> int:
        end = self.content.find("\n", self.pos)
        return len(self.content) if end == -1 else end

    def _line_head(self) -> str:
        return self.content[self.pos:self._line_end()].lstrip(" ")

    def _step_over_newline(self) -> None:
        if not self.is_eof():
            self.pos += 1

    def skip_rest_of_line(self) -> None:
        """Move to the start of the next line (or end of input)."""
        self.pos = self._line_end()
        self._step_over_newline()

    def rewind_to_line_beginning(self) -> None:
        while self.pos > 0 and not self.is_at_line_start():
            self.pos -= 1

    def is_blank_line(self) -> bool:
        if not self.is_at_line_start():
            raise ProgrammingError("Blank line check when not at start of line")
        if self.is_eof():
            raise PvlEofError()
        window = self.content[self.pos:self.pos + BLANK_LINE_LOOKAHEAD]
        return window.split("\n", 1)[0].strip(" ") == ""

    def is_at_value_line_continuation(self) -> bool:
        if self.is_eof() or not self.is_at_line_start():
            return False
        return self.content.startswith(LINE_CONTINUATION_PREFIX, self.pos)

    def is_at_statement(self) -> bool:
        """True on a line that starts a new pair or a block marker."""
        if self.is_eof() or not self.is_at_line_start():
            return False
        head = self._line_head()
        if _ASSIGNMENT_RE.match(head):
            return True
        return Symbol.classify(head.split("=", 1)[0]).kind in _STATEMENT_KINDS

    def _is_at_keyword(self, keyword: str) -> bool:
        if not self.is_at_line_start():
            raise ProgrammingError(f"Attempt to check for {keyword} when not at start of line")
        head = self._line_head()
        return head.startswith(keyword) and head[len(keyword):len(keyword) + 1] in ("", " ", "=")

    def is_at_group(self) -> bool:
        return self.has_remaining(len("GROUP")) and self._is_at_keyword("GROUP")

    def is_at_object(self) -> bool:
        return self.has_remaining(len("OBJECT")) and self._is_at_keyword("OBJECT")

    def is_at_end(self) -> bool:
        """True on the line that terminates the document (exactly ``END``)."""
        if self.is_eof() or not self.is_at_line_start():
            return False
        return self._line_head().rstrip() == "END"

    # ------------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------------

    def is_at_multiline_comment_start(self) -> bool:
        return self.content.startswith("/*", self.pos)

    def is_at_multiline_comment_end(self) -> bool:
        return self.content.startswith("*/", self.pos)

    def is_at_comment_line(self) -> bool:
        if self.is_eof() or not self.is_at_line_start():
            return False
        return self._line_head().startswith("/*")

    def skip_multiline_comment(self) -> str:
        """Skip a ``/* ... */`` comment and return its inner text."""
        if not self.is_at_multiline_comment_start():
            raise CommentError(f"No comment at index {self.pos}")
        start = self.pos = self.pos + 2
        while not self.is_at_multiline_comment_end():
            if self.pos >= len(self.content) - 1:
                raise PvlEofError("Unterminated comment")
            self.pos += 1
        text = self.content[start:self.pos]
        self.pos += 2
        return text.strip()

    def skip_comment_line(self) -> str:
        """Skip a line holding a ``/* */`` comment and return the comment text.

        The whole line is consumed; text after the closing ``*/`` is dropped
        with a warning.
        """
        while self.content.startswith(" ", self.pos):
            self.pos += 1
        text = self.skip_multiline_comment()
        trailing = self._read_line_text()
        if trailing:
            logger.warning(f"Ignoring text after comment: {trailing!r}")
        self.skip_rest_of_line()
        return text

    # ------------------------------------------------------------------------
    # Symbols and values
    # ------------------------------------------------------------------------

    def _check_at_pair_start(self) -> None:
        if self.is_at_value_line_continuation():
            raise PvlSyntaxError(
                f"Value line continuation without a preceding key value pair at index {self.pos}"
            )
        if not self.is_at_line_start():
            raise ProgrammingError("Attempt to read a key value pair when not at beginning of a line")

    def read_symbol(self) -> Symbol:
        """Read the left-hand side of the current line, stopping at ``=``."""
        self._check_at_pair_start()
        start = self.pos
        while not self.is_eof() and self.content[self.pos] not in "=\n":
            self.pos += 1
        return Symbol.classify(self.content[start:self.pos])

    def _read_line_text(self) -> str:
        start = self.pos
        self.pos = self._line_end()
        return self.content[start:self.pos].strip()

    def read_remaining_line(self) -> str:
        if not self.is_eof() and self.is_at_equals():
            self.pos += 1
        return self._read_line_text()

    def read_key_value_pair(self) -> KeyValuePair:
        """Read one logical ``KEY = VALUE`` line, merging continuation lines."""
        self._check_at_pair_start()
        key = self.read_symbol()
        value = self.read_remaining_line()
        self._step_over_newline()

        while not self.is_eof():
            if self.is_at_value_line_continuation():
                value += self._read_line_text()
            elif _is_open_value(value) and not self.is_at_statement():
                # Quoted strings and tuples may also wrap at arbitrary columns,
                # but never over the start of the next statement.
                value = f"{value} {self._read_line_text()}"
            else:
                break
            self._step_over_newline()

        return KeyValuePair(key=key, value=Value(value))

    # ------------------------------------------------------------------------
    # Blocks
    # ------------------------------------------------------------------------

    def read_group(self) -> Group:
        if self.is_eof():
            raise PvlEofError()
        if not self.is_at_group():
            raise ProgrammingError("Attempted to read a group when not at a group start")
        return self._read_block(Group, SymbolKind.GROUP_END)

    def read_object(self) -> Object:
        if self.is_eof():
            raise PvlEofError()
        if not self.is_at_object():
            raise ProgrammingError("Attempted to read an object when not at an object start")
        return self._read_block(Object, SymbolKind.OBJECT_END)

    def _read_block(self, block_cls: type[PropertyGrouping], end_kind: SymbolKind):
        start = self.read_key_value_pair()
        block = block_cls(name=start.value.parse_flag())

        while True:
            if self.is_eof():
                raise PvlEofError(f"{block_cls.KIND.name} {block.name} is missing its end marker")
            if self.is_at_comment_line():
                self.skip_comment_line()
            elif self.is_blank_line():
                self.skip_rest_of_line()
            elif self.is_at_group():
                block.groups.append(self.read_group())
            elif self.is_at_object():
                block.objects.append(self.read_object())
            else:
                kvp = self.read_key_value_pair()
                kind = kvp.key.kind
                if kind is end_kind:
                    return block
                if kind in (SymbolKind.GROUP_END, SymbolKind.OBJECT_END, SymbolKind.END):
                    raise PvlSyntaxError(
                        f"Unexpected {kind.name} inside {block_cls.KIND.name} {block.name}"
                    )
                if kind is not SymbolKind.BLANK_LINE:
                    block.properties.append(kvp)


# ============================================================================
# Document
# ============================================================================


@dataclass
class Pvl:
    """A parsed PVL label."""

    properties: list[KeyValuePair] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    objects: list[Object] = field(default_factory=list)

    @classmethod
    def load(cls, file_path: str | Path) -> "Pvl":
        """Load and parse a PVL label file (or the label at the head of a product)."""
        file_path = Path(file_path)
        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise LabelError(f"Failed to read label {file_path}: {e}") from e
        return cls.from_string(data.decode("utf-8", errors="replace"))

    @classmethod
    def from_string(cls, content: str) -> "Pvl":
        """Parse PVL text. Parsing stops at the ``END`` line."""
        pvl = cls()
        scanner = PvlScanner(content)

        while not scanner.is_eof() and not scanner.is_at_end():
            if scanner.is_at_comment_line():
                scanner.skip_comment_line()
            elif scanner.is_blank_line():
                scanner.skip_rest_of_line()
            elif scanner.is_at_group():
                pvl.groups.append(scanner.read_group())
            elif scanner.is_at_object():
                pvl.objects.append(scanner.read_object())
            else:
                kvp = scanner.read_key_value_pair()
                kind = kvp.key.kind
                if kind is SymbolKind.END:
                    break
                if kind in (SymbolKind.GROUP_END, SymbolKind.OBJECT_END):
                    raise PvlSyntaxError(f"{kind.name} without an open block")
                if kind is not SymbolKind.BLANK_LINE:
                    pvl.properties.append(kvp)

        logger.debug(
            f"Parsed PVL label: {len(pvl.properties)} properties, "
            f"{len(pvl.groups)} groups, {len(pvl.objects)} objects"
        )
        return pvl

    def has_property(self, name: str) -> bool:
        return self.get_property(name) is not None

    def get_property(self, name: str) -> Optional[KeyValuePair]:
        return _find_property(self.properties, name)

    def get_group(self, name: str) -> Optional[Group]:
        return next((g for g in self.groups if g.name == name), None)

    def get_object(self, name: str) -> Optional[Object]:
        return next((o for o in self.objects if o.name == name), None)
