from customer_import.domain.imports.csv_parser import DelimitedText, parse_csv, split_line


def test_quoted_field_with_comma_is_one_field():
    assert split_line('Jane,"Smith, Jr.",jane@example.com') == ["Jane", "Smith, Jr.", "jane@example.com"]


def test_crlf_and_lf_line_endings_both_split_rows():
    rows = parse_csv("a,b\r\nc,d\ne,f")
    assert rows == [["a", "b"], ["c", "d"], ["e", "f"]]


def test_blank_lines_are_skipped():
    rows = parse_csv("a,b\n\n   \r\nc,d\n\n")
    assert rows == [["a", "b"], ["c", "d"]]


def test_fields_are_trimmed():
    assert split_line('  Jane  ,  " Doe "  ') == ["Jane", "Doe"]


def test_empty_fields_are_kept_positionally():
    assert split_line("a,,c,") == ["a", "", "c", ""]


def test_doubled_quote_is_not_unescaped():
    # "" inside a quoted field toggles quoting twice; no literal quote survives.
    assert split_line('"He said ""hi"", ok",x') == ["He said hi, ok", "x"]


def test_unterminated_quote_runs_to_end_of_line():
    assert split_line('a,"b,c') == ["a", "b,c"]
    assert parse_csv('a,"b\nc,d') == [["a", "b"], ["c", "d"]]


def test_empty_text_has_no_rows():
    assert parse_csv("") == []
    assert parse_csv("\n\r\n  \n") == []


def test_delimited_text_is_restartable():
    text = DelimitedText("h1,h2\n1,2\n3,4\n")
    first = list(text)
    second = list(text)
    assert first == second == [["h1", "h2"], ["1", "2"], ["3", "4"]]


def test_delimited_text_is_lazy():
    rows = iter(DelimitedText("a\nb\nc"))
    assert next(rows) == ["a"]
    assert next(rows) == ["b"]


def test_bare_carriage_return_is_not_a_line_break():
    assert parse_csv("a\rb,c") == [["a\rb", "c"]]
