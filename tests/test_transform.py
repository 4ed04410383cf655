import pytest
from jsmini.transform import transform


@pytest.mark.parametrize("src,expected", [
    ("let x = 1", "var x = 1"),
    ("const a = 1, b = 2;", "var a = 1, b = 2;"),
    ("var z = 3", "var z = 3"),
    ("x = 1", "x = 1"),
    ("for (let i = 0; i < 3; i++) {}", "for (var i = 0; i < 3; i++) {}"),
    ("function f() { let y = 2; return y }", "function f() { var y = 2; return y }"),
    ("class A { m() { return 1 } }", "var A = class A { m() { return 1 } };"),
])
def test_rewrites(src, expected): assert transform(src) == expected


def test_class_then_declaration():
    src = "class B extends A {}\nlet c = new B()"
    assert transform(src) == "var B = class B extends A {};\nvar c = new B()"


def test_adjacent_class_and_let():
    assert transform("class A {}let b = 1") == "var A = class A {};var b = 1"


def test_class_inside_function():
    src = "function make() { class Inner {} return Inner }"
    assert transform(src) == "function make() { var Inner = class Inner {}; return Inner }"


def test_strings_and_comments_untouched():
    src = "var s = 'let x = 1'; // const y\nvar t = `class Z {}`"
    assert transform(src) == src


def test_class_expression_untouched():
    src = "var K = class Named {}"
    assert transform(src) == src


def test_whitespace_preserved():
    src = "  let   spaced =  1 ;\n\n\tconst  tab = 2"
    assert transform(src) == "  var   spaced =  1 ;\n\n\tvar  tab = 2"


def test_syntax_error():
    with pytest.raises(SyntaxError) as info: transform("let = ;")
    assert info.value.lineno == 1


def test_syntax_error_line():
    with pytest.raises(SyntaxError) as info: transform("var ok = 1\nfunction (")
    assert info.value.lineno == 2
    assert info.value.text == "function ("


@pytest.mark.parametrize("src", [
    "try { throw 1 } catch { 5 }",
    "async function* gen() { yield 1 }",
    "var v = a?.b ?? 0",
    "var big = 10n ** 3n",
])
def test_modern_syntax_passes_through(src): assert transform(src) == src


def test_for_of_head():
    assert transform("for (const k of xs) { let y = k }") == "for (var k of xs) { var y = k }"


def test_lone_surrogate_kept():
    assert transform("var s = '\ud800'; let t = 1") == "var s = '\ud800'; var t = 1"
