import pytest

from pvl_errors import (
    CommentError,
    LabelError,
    ProgrammingError,
    PvlEofError,
    PvlSyntaxError,
)
from pvl_label import (
    LINE_CONTINUATION_PREFIX,
    Group,
    Object,
    Pvl,
    PvlScanner,
    Symbol,
    SymbolKind,
)
from pvl_value import ValueType

LABEL = (
    "PDS_VERSION_ID = PDS3\n"
    "/* FILE DATA ELEMENTS */\n"
    "RECORD_TYPE = FIXED_LENGTH\n"
    '^IMAGE = ("TEST.IMG")\n'
    'MISSION_PHASE_NAME = "EXTENDED SURFACE MISSION"\n'
    "\n"
    "GROUP = IMAGE\n"
    "  LINES = 4\n"
    "  /* geometry */\n"
    "  LINE_SAMPLES = 4\n"
    "END_GROUP = IMAGE\n"
    "OBJECT = IMAGE_DATA\n"
    "  BANDS = 1\n"
    "END_OBJECT = IMAGE_DATA\n"
    "END\n"
)


def test_document_shape():
    pvl = Pvl.from_string(LABEL)

    assert [p.key.name for p in pvl.properties] == [
        "PDS_VERSION_ID",
        "RECORD_TYPE",
        "^IMAGE",
        "MISSION_PHASE_NAME",
    ]
    assert len(pvl.groups) == 1
    assert len(pvl.objects) == 1

    group = pvl.get_group("IMAGE")
    assert isinstance(group, Group)
    assert group.type_of() is SymbolKind.GROUP
    assert [p.key.name for p in group.properties] == ["LINES", "LINE_SAMPLES"]
    assert all(p.key.kind is SymbolKind.KEY for p in group.properties)

    obj = pvl.get_object("IMAGE_DATA")
    assert isinstance(obj, Object)
    assert obj.type_of() is SymbolKind.OBJECT
    assert obj.get_property("BANDS").value.parse_usize() == 1


def test_repeated_parses_are_stable():
    first = Pvl.from_string(LABEL)
    second = Pvl.from_string(LABEL)
    assert first == second
    assert (len(first.properties), len(first.groups), len(first.objects)) == (4, 1, 1)


def test_lookups():
    pvl = Pvl.from_string(LABEL)

    pointer = pvl.get_property("^IMAGE")
    assert pointer.key == Symbol(SymbolKind.POINTER, "^IMAGE")
    assert pointer.value.value_type is ValueType.ARRAY
    assert pointer.value.parse_array()[0].parse_string() == "TEST.IMG"

    assert pvl.get_property("MISSION_PHASE_NAME").value.parse_string() == "EXTENDED SURFACE MISSION"
    assert pvl.has_property("RECORD_TYPE")
    assert not pvl.has_property("record_type")
    assert pvl.get_property("LINES") is None
    assert pvl.get_group("NOPE") is None
    assert pvl.get_object("IMAGE") is None

    group = pvl.get_group("IMAGE")
    assert group.has_property("LINES")
    assert group.get_property("BANDS") is None


def test_crlf_line_endings():
    pvl = Pvl.from_string("A = 1\r\nB = 2\r\nEND\r\n")
    assert [p.value.raw for p in pvl.properties] == ["1", "2"]


def test_end_stops_parsing_before_end_of_input():
    pvl = Pvl.from_string("A = 1\nEND\nB = 2\n\x00\x01binary")
    assert [p.key.name for p in pvl.properties] == ["A"]


def test_missing_end_line_parses_to_end_of_input():
    pvl = Pvl.from_string("A = 1\nB = 2")
    assert pvl.get_property("B").value.parse_int() == 2


def test_continuation_lines_concatenate_without_separator():
    text = "NOTE = ABC\n" + LINE_CONTINUATION_PREFIX + "DEF\n" + "NEXT = 1\nEND\n"
    pvl = Pvl.from_string(text)
    assert pvl.get_property("NOTE").value.raw == "ABCDEF"
    assert pvl.get_property("NEXT").value.parse_int() == 1


def test_continued_array():
    text = "ARR = (1,2,\n" + LINE_CONTINUATION_PREFIX + "3,4)\nEND\n"
    values = Pvl.from_string(text).get_property("ARR").value.parse_array()
    assert [v.parse_int() for v in values] == [1, 2, 3, 4]


def test_wrapped_quoted_string():
    text = 'DESC = "first part\n    second part"\nB = 2\nEND\n'
    pvl = Pvl.from_string(text)
    assert pvl.get_property("DESC").value.parse_string() == "first part second part"
    assert pvl.get_property("B").value.parse_int() == 2


def test_unclosed_quote_stops_at_next_pair():
    pvl = Pvl.from_string('A = "x\nB = 1\nEND\n')
    assert pvl.get_property("A").value.raw == '"x'
    assert pvl.get_property("B").value.parse_int() == 1


def test_unclosed_quote_stops_at_block_end():
    text = 'OBJECT = IMAGE\n  NOTE = 5"\nEND_OBJECT = IMAGE\nEND\n'
    image = Pvl.from_string(text).get_object("IMAGE")
    assert image.get_property("NOTE").value.raw == '5"'


def test_unclosed_tuple_stops_at_end_line():
    pvl = Pvl.from_string("ARR = (1, 2\nEND\nB = 3\n")
    assert pvl.get_property("ARR").value.raw == "(1, 2"
    assert pvl.get_property("B") is None


def test_blank_lines_with_spaces_are_skipped():
    pvl = Pvl.from_string("A = 1\n   \n\nB = 2\nEND\n")
    assert len(pvl.properties) == 2


def test_keys_starting_with_block_words_are_properties():
    pvl = Pvl.from_string("GROUP_ID = 5\nOBJECTIVE = NONE\nEND\n")
    assert pvl.groups == [] and pvl.objects == []
    assert pvl.get_property("GROUP_ID").value.parse_int() == 5


def test_nested_blocks():
    text = (
        "OBJECT = OUTER\n"
        "  A = 1\n"
        "  GROUP = INNER\n"
        "    B = 2\n"
        "  END_GROUP = INNER\n"
        "  C = 3\n"
        "END_OBJECT = OUTER\n"
        "END\n"
    )
    outer = Pvl.from_string(text).get_object("OUTER")
    assert [p.key.name for p in outer.properties] == ["A", "C"]
    assert outer.get_group("INNER").get_property("B").value.parse_int() == 2


def test_continuation_without_key_is_a_syntax_error():
    with pytest.raises(PvlSyntaxError):
        Pvl.from_string(LINE_CONTINUATION_PREFIX + "X = 1\n")


def test_unterminated_group():
    with pytest.raises(PvlEofError):
        Pvl.from_string("GROUP = A\n  X = 1\n")


def test_stray_block_end():
    with pytest.raises(PvlSyntaxError):
        Pvl.from_string("A = 1\nEND_GROUP = A\nEND\n")


def test_unterminated_comment():
    with pytest.raises(PvlEofError):
        Pvl.from_string("/* never closed\nA = 1\n")


def test_load(tmp_path):
    path = tmp_path / "label.lbl"
    path.write_bytes(LABEL.encode("ascii") + b"\xff\xfe trailing bytes")
    assert Pvl.load(path) == Pvl.from_string(LABEL)


def test_load_missing_file(tmp_path):
    with pytest.raises(LabelError):
        Pvl.load(tmp_path / "missing.lbl")


# ============================================================================
# Scanner
# ============================================================================


def test_scanner_character_access():
    scanner = PvlScanner("AB\r\nC")
    assert scanner.content == "AB\nC"
    assert scanner.current_char() == "A"
    assert scanner.peek_char() == "B"
    assert scanner.char_at_offset(3) == "C"
    assert scanner.next_char() == "B"
    with pytest.raises(PvlEofError):
        scanner.char_at(4)


def test_scanner_line_start():
    scanner = PvlScanner("A = 1\nB = 2\n")
    assert scanner.is_at_line_start()
    scanner.jump(3)
    assert not scanner.is_at_line_start()
    scanner.rewind_to_line_beginning()
    assert scanner.pos == 0
    scanner.jump(6)
    assert scanner.is_at_line_start()


def test_scanner_symbols():
    scanner = PvlScanner("^IMAGE = 12\nEND_OBJECT = IMAGE\n")
    assert scanner.read_symbol() == Symbol(SymbolKind.POINTER, "^IMAGE")
    assert scanner.is_at_equals()
    assert scanner.read_remaining_line() == "12"
    scanner.skip_rest_of_line()
    assert scanner.read_key_value_pair().key.kind is SymbolKind.OBJECT_END


def test_scanner_comment_capture():
    scanner = PvlScanner("/* hello */\nA = 1\n")
    assert scanner.is_at_multiline_comment_start()
    assert scanner.skip_multiline_comment() == "hello"
    with pytest.raises(CommentError):
        scanner.skip_multiline_comment()


def test_scanner_blank_and_continuation_checks():
    scanner = PvlScanner("    \n" + LINE_CONTINUATION_PREFIX + "x\n")
    assert scanner.is_blank_line()
    assert not scanner.is_at_value_line_continuation()
    scanner.skip_rest_of_line()
    assert scanner.is_at_value_line_continuation()
    assert not scanner.is_blank_line()


def test_scanner_preconditions():
    scanner = PvlScanner("A = 1\n")
    scanner.pos = 2
    with pytest.raises(ProgrammingError):
        scanner.read_key_value_pair()
    with pytest.raises(ProgrammingError):
        scanner.is_blank_line()

    scanner.pos = 0
    with pytest.raises(ProgrammingError):
        scanner.read_group()
    with pytest.raises(ProgrammingError):
        scanner.read_object()


def test_scanner_reads_group_directly():
    scanner = PvlScanner("GROUP = G\n  A = 1\n\n  B = 2\nEND_GROUP = G\nC = 3\n")
    group = scanner.read_group()
    assert group.name == "G"
    assert [p.key.name for p in group.properties] == ["A", "B"]
    assert scanner.read_key_value_pair().key.name == "C"


def test_scanner_statement_lines():
    scanner = PvlScanner("A = 1\n  more text\nEND_GROUP = G\nEND\n  ^IMAGE= 3\n")
    expected = [True, False, True, True, True]
    for is_statement in expected:
        assert scanner.is_at_statement() is is_statement
        scanner.skip_rest_of_line()
    assert not scanner.is_at_statement()


def test_text_after_comment_on_the_same_line(caplog):
    pvl = Pvl.from_string("/* note */ A = 1\nB = 2\nEND\n")
    assert pvl.get_property("A") is None
    assert pvl.get_property("B").value.parse_int() == 2
    assert "A = 1" in caplog.text


def test_comment_line_returns_comment_text():
    scanner = PvlScanner("  /* a note */\nA = 1\n")
    assert scanner.skip_comment_line() == "a note"
    assert scanner.read_key_value_pair().key.name == "A"
