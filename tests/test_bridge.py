import time, pytest
from jsmini.bridge import JsBridge, NO_STDIN


@pytest.fixture
def bridge():
    events = []
    b = JsBridge()
    b.set_stream_sender(lambda name, text: events.append((name, text)))
    b.events = events
    return b


def text(res):
    assert res["error"] is None, res["error"]
    return res["result"]["text/plain"]


@pytest.mark.parametrize("code,expected", [
    ("1+1", "2"),
    ("'hi'", "'hi'"),
    ("var a = 1", "undefined"),
    ("null", "null"),
    ("[1, 'two', true]", "[ 1, 'two', true ]"),
    ("({a: 1, b: [1, 2]})", "{ a: 1, b: [ 1, 2 ] }"),
    ("({a: {b: {c: {d: 1}}}})", "{ a: { b: { c: [Object] } } }"),
    ("[]", "[]"),
    ("new Map([['a', 1]])", "Map(1) { 'a' => 1 }"),
    ("new Set([1])", "Set(1) { 1 }"),
    ("(function foo() {})", "[Function: foo]"),
    ("class K {}; K", "[class K]"),
])
def test_result_text(bridge, code, expected): assert text(bridge.execute(code)) == expected


def test_circular(bridge): assert text(bridge.execute("var o = {}; o.self = o; o")) == "{ self: [Circular] }"


def test_state_persists(bridge):
    text(bridge.execute("var y = 40; function add(n) { return y + n }"))
    assert text(bridge.execute("add(2)")) == "42"


def test_let_redeclared_across_cells(bridge):
    text(bridge.execute("let x = 1"))
    assert text(bridge.execute("let x = 2; x")) == "2"
    assert text(bridge.execute("const x = 3; x")) == "3"


def test_class_redeclared_across_cells(bridge):
    text(bridge.execute("class A { f() { return 1 } }"))
    assert text(bridge.execute("class A { f() { return 2 } }; new A().f()")) == "2"


def test_error(bridge):
    res = bridge.execute("throw new Error('boom')")
    assert res["result"] is None
    err = res["error"]
    assert err["ename"] == "Error"
    assert err["evalue"] == "boom"
    assert err["traceback"][0] == "Error: boom"


def test_builtin_error_name(bridge): assert bridge.execute("null.x")["error"]["ename"] == "TypeError"


def test_non_error_throw(bridge):
    err = bridge.execute("throw 42")["error"]
    assert err["ename"] == "Uncaught"
    assert err["evalue"] == "42"


def test_syntax_error(bridge):
    err = bridge.execute("let = ;")["error"]
    assert err["ename"] == "SyntaxError"
    assert err["traceback"]


def test_error_keeps_context(bridge):
    bridge.execute("var kept = 7; throw new Error('x')")
    assert text(bridge.execute("kept")) == "7"


def test_console_streams(bridge):
    text(bridge.execute("console.log('a', 1); console.error('b'); console.warn('c')"))
    assert bridge.events == [("stdout", "a 1\n"), ("stderr", "b\n"), ("stderr", "c\n")]


def test_console_format(bridge):
    bridge.execute("console.log('%s is %d%%', 'x', 42)")
    assert bridge.events == [("stdout", "x is 42%\n")]


def test_console_objects(bridge):
    bridge.execute("console.log({a: 1}, [2])")
    assert bridge.events == [("stdout", "{ a: 1 } [ 2 ]\n")]


def test_console_assert_and_count(bridge):
    bridge.execute("console.assert(1 > 2, 'nope'); console.count(); console.count()")
    assert bridge.events == [("stderr", "Assertion failed: nope\n"), ("stdout", "default: 1\n"), ("stdout", "default: 2\n")]


def test_console_group(bridge):
    bridge.execute("console.group('g'); console.log('inner'); console.groupEnd(); console.log('outer')")
    assert [t for _, t in bridge.events] == ["g\n", "  inner\n", "outer\n"]


def test_output_before_error_kept(bridge):
    res = bridge.execute("console.log('before'); throw new Error('after')")
    assert bridge.events == [("stdout", "before\n")]
    assert res["error"]["evalue"] == "after"


def test_promise_callbacks_run(bridge):
    bridge.execute("Promise.resolve(5).then(v => console.log('got', v)); 1")
    assert ("stdout", "got 5\n") in bridge.events


def test_prompt_without_stdin(bridge):
    err = bridge.execute("prompt('name?')")["error"]
    assert err["ename"] == "Error"
    assert err["evalue"] == NO_STDIN


def test_prompt_with_stdin():
    calls = []
    def request_input(prompt, password):
        calls.append((prompt, password))
        return "ada"
    b = JsBridge(request_input=request_input)
    assert text(b.execute("prompt('name?')", allow_stdin=True)) == "'ada'"
    assert calls == [("name?", False)]
    assert b.execute("prompt('again?')", allow_stdin=False)["error"]["evalue"] == NO_STDIN


def test_inspect_depth():
    b = JsBridge(inspect_depth=0)
    assert text(b.execute("({a: {b: 1}})")) == "{ a: [Object] }"


def test_output_without_sender_dropped():
    b = JsBridge()
    assert text(b.execute("console.log('nobody listening'); 3")) == "3"


def test_modern_syntax_runs(bridge):
    assert text(bridge.execute("var o = {a: {b: 2}}; o?.a?.b ?? 0")) == "2"
    assert text(bridge.execute("try { throw 1 } catch { 'caught' }")) == "'caught'"


def test_lone_surrogate_result(bridge):
    assert text(bridge.execute("'\\ud800'")) == "'\ufffd'"
    assert text(bridge.execute("1")) == "1"


def test_lone_surrogate_output(bridge):
    bridge.execute("console.log('x\\udc00y')")
    assert bridge.events == [("stdout", "x\ufffdy\n")]


def test_lone_surrogate_error(bridge):
    err = bridge.execute("throw new Error('\\ud800')")["error"]
    assert err["evalue"] == "\ufffd"
    assert all("\ud800" not in line for line in err["traceback"])


def test_surrogate_pair_kept(bridge): assert text(bridge.execute("'\\ud83d\\ude00'")) == "'\U0001F600'"


def test_unhandled_rejection_reported(bridge):
    assert text(bridge.execute("Promise.resolve().then(() => { throw new Error('late') }); 1")) == "1"
    assert bridge.events == [("stderr", "Uncaught (in promise) Error: late\n")]


def test_handled_rejection_quiet(bridge):
    bridge.execute("Promise.reject(new Error('x')).catch(e => console.log('caught', e.message))")
    assert bridge.events == [("stdout", "caught x\n")]


def test_rejected_result_reported(bridge):
    bridge.execute("(async () => { throw new TypeError('nope') })()")
    assert bridge.events == [("stderr", "Uncaught (in promise) TypeError: nope\n")]


def test_timer_globals(bridge):
    names = "setTimeout setInterval setImmediate clearTimeout clearInterval clearImmediate queueMicrotask".split()
    assert text(bridge.execute(f"[{', '.join(f'typeof {n}' for n in names)}].every(t => t === 'function')")) == "true"


def test_callbacks_fire_before_result(bridge):
    code = """setTimeout(() => console.log('t', 2), 20);
setImmediate(() => console.log('i'));
queueMicrotask(() => console.log('m'));
console.log('sync'); 'done'"""
    assert text(bridge.execute(code)) == "'done'"
    assert [t for _, t in bridge.events] == ["sync\n", "m\n", "i\n", "t 2\n"]


def test_clear_timeout(bridge):
    bridge.execute("var h = setTimeout(() => console.log('never'), 1); clearTimeout(h); setTimeout(() => console.log('yes'), 2)")
    assert bridge.events == [("stdout", "yes\n")]


def test_interval_until_cleared(bridge):
    bridge.execute("var n = 0; var h = setInterval(() => { console.log(++n); if (n === 3) clearInterval(h) }, 1)")
    assert [t for _, t in bridge.events] == ["1\n", "2\n", "3\n"]


def test_timer_callback_error(bridge):
    assert text(bridge.execute("setTimeout(() => { throw new Error('tick') }, 1); 5")) == "5"
    assert bridge.events == [("stderr", "Uncaught Error: tick\n")]


def test_timer_requires_function(bridge): assert bridge.execute("setTimeout('1+1', 1)")["error"]["ename"] == "TypeError"


def test_late_timer_fires_in_later_cell():
    b = JsBridge(timer_wait=0.05)
    events = []
    b.set_stream_sender(lambda name, text: events.append(text))
    start = time.monotonic()
    b.execute("setTimeout(() => console.log('late'), 300)")
    assert time.monotonic() - start < 0.3
    assert events == []
    time.sleep(0.35)
    b.execute("1")
    assert events == ["late\n"]


def test_leftover_interval_does_not_block():
    b = JsBridge(timer_wait=0.2)
    b.execute("var ticks = 0; setInterval(() => ticks++, 1000)")
    start = time.monotonic()
    assert text(b.execute("2")) == "2"
    assert time.monotonic() - start < 0.2


def test_busy_interval_bounded_by_budget():
    b = JsBridge(timer_wait=0.2)
    start = time.monotonic()
    assert text(b.execute("setInterval(() => { var t = Date.now(); while (Date.now() - t < 3) {} }, 1); 'ok'")) == "'ok'"
    assert time.monotonic() - start < 1.0
