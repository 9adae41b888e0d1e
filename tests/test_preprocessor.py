import pytest

from moonlet.moonlet_preprocessor import fix_lines, strip_comment, opens_block, LinePreprocessor


def test_flat_input_is_passed_through_trimmed():
    lines = ["  x = 1  ", "y = 2", "print(x)"]
    assert fix_lines(lines) == ["x = 1", "y = 2", "print(x)"]


def test_comments_and_blank_lines_are_dropped():
    lines = ["-- header comment", "", "   ", "x = 1 -- trailing", "print(x)--tight"]
    assert fix_lines(lines) == ["x = 1", "print(x)"]


def test_single_quotes_become_double_quotes():
    assert fix_lines(["print('hi')"]) == ['print("hi")']


def test_comment_marker_inside_string_is_still_a_comment():
    # Naive scan: the string literal is cut short.
    assert strip_comment('s = "a--b"') == 's = "a'


def test_if_block_merges_into_one_line():
    lines = ["if 1 == 1 then", "print(1)", "end"]
    assert fix_lines(lines) == ["if 1 == 1 then print(1) end"]


def test_nested_blocks_track_depth():
    lines = [
        "local function f(n)",
        "  if n == 0 then",
        "    return 1",
        "  else",
        "    return 2",
        "  end",
        "end",
        "print(f(0))",
    ]
    assert fix_lines(lines) == [
        "local function f(n) if n == 0 then return 1 else return 2 end end",
        "print(f(0))",
    ]


def test_end_is_case_insensitive():
    assert fix_lines(["if x then", "y = 1", "END"]) == ["if x then y = 1 END"]


def test_unterminated_block_is_flushed():
    lines = ["x = 1", "if x == 1 then", "print(x)"]
    assert fix_lines(lines) == ["x = 1", "if x == 1 then print(x)"]


def test_loop_keywords_open_blocks():
    lines = ["while x do", "x = 1", "end", "for i = 1, 3 do", "end"]
    assert fix_lines(lines) == ["while x do x = 1 end", "for i = 1, 3 do end"]


@pytest.mark.parametrize("line,expected", [
    ("if x then", True),
    ("function f()", True),
    ("local function f()", True),
    ("iffy = 1", False),
    ("else", False),
    ("local x = 1", False),
])
def test_opens_block(line, expected):
    assert opens_block(line) is expected


def test_incremental_feed_reports_pending_block():
    pre = LinePreprocessor()
    assert pre.feed("if a then") == []
    assert pre.pending
    assert pre.feed("  print(a)") == []
    assert pre.feed("end") == ["if a then print(a) end"]
    assert not pre.pending
    assert pre.feed("x = 2") == ["x = 2"]
    assert pre.flush() == []
