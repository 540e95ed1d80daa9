from ircgate.commands import consume_flag, leading_flags, parse_flag, unescape


def test_parse_flag_only_sees_leading_flags():
    assert parse_flag('-to:#chan hello', 'to')
    assert parse_flag('-list', 'list')
    assert not parse_flag('hello -to:#chan', 'to')
    assert not parse_flag('', 'to')


def test_parse_flag_is_case_insensitive():
    assert parse_flag('-TO:#chan hello', 'to')
    assert parse_flag('-to:#chan hello', 'To')


def test_consume_flag_returns_value_and_remainder():
    assert consume_flag('-to:#chan Hello there', 'to') == ('#chan', 'Hello there')
    assert consume_flag('-to=#chan Hello there', 'to') == ('#chan', 'Hello there')


def test_consume_flag_quoted_value():
    text = '-structure:"^([0-9]+) x$" !roll {0}d30'
    assert consume_flag(text, 'structure') == ('^([0-9]+) x$', '!roll {0}d30')
    assert consume_flag(r'-say:"a \"quoted\" word" rest', 'say') == ('a "quoted" word', 'rest')


def test_consume_flag_without_value():
    assert consume_flag('-list', 'list') == ('', '')
    assert consume_flag('-escape !say hi', 'escape') == ('', '!say hi')


def test_consume_flag_absent_leaves_message_untouched():
    assert consume_flag(r'hello \-world', 'to') == ('', r'hello \-world')
    assert consume_flag('hi -to:#chan', 'to') == ('', 'hi -to:#chan')


def test_consume_flag_only_removes_the_named_flag():
    assert consume_flag('-a:1 -b:2 rest', 'b') == ('2', '-a:1 rest')
    assert consume_flag('-a:1 -b:2 rest', 'a') == ('1', '-b:2 rest')


def test_escaped_marker_is_not_a_flag():
    assert not parse_flag(r'\-to:#chan hi', 'to')
    assert leading_flags(r'\-to:#chan hi') == []


def test_consume_flag_unescapes_remainder_unless_asked_not_to():
    assert consume_flag(r'-create:x !say \-to is literal', 'create') == ('x', '!say -to is literal')
    assert consume_flag(r'-create:x !say \-to is literal', 'create', escape=True) == ('x', r'!say \-to is literal')
    assert unescape(r'\-a \-b') == '-a -b'


def test_leading_flags_stop_at_first_word():
    flags = leading_flags('-create:roll30 -structure:^[0-9]+$ !roll -seed:1 {0}d30')
    assert [(flag.name, flag.value) for flag in flags] == [('create', 'roll30'), ('structure', '^[0-9]+$')]


def test_malformed_input_does_not_raise():
    for text in ('-', '--', '-"broken', '-a:"unterminated rest', ' ', '-:x'):
        leading_flags(text)
        consume_flag(text, 'a')

