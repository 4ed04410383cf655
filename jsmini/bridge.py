import json, logging, time
from contextlib import contextmanager
from typing import Callable
import quickjs
from .transform import transform

log = logging.getLogger("jsmini.bridge")

WRITE_HOOK = "__jsmini_write"
INPUT_HOOK = "__jsmini_input"
NO_STDIN = "prompt() was called, but this frontend does not support input requests."

# Installed once per context. Everything the kernel needs at run time hangs off
# the non-enumerable `__jsmini` global; `console`, `prompt` and `global` are user-facing.
PRELUDE = r"""
(function (g) {
  "use strict";
  const write = g.__jsmini_write, readInput = g.__jsmini_input;
  const IDENT = /^[A-Za-z_$][\w$]*$/;
  let inspectDepth = 2, groupIndent = "";
  // Lone UTF-16 surrogates can't cross into Python as text; they become U+FFFD.
  const LONE_SURROGATE = /[\ud800-\udbff](?![\udc00-\udfff])|(?<![\ud800-\udbff])[\udc00-\udfff]/g;
  const wellFormed = (s) => String(s).replace(LONE_SURROGATE, "\ufffd");

  const quote = (s) => "'" + s.replace(/\\/g, "\\\\").replace(/'/g, "\\'").replace(/\n/g, "\\n") + "'";

  function fnLabel(fn) {
    let src = "";
    try { src = Function.prototype.toString.call(fn); } catch (e) {}
    if (/^class\b/.test(src)) {
      const parent = Object.getPrototypeOf(fn);
      const ext = parent && parent.name ? ` extends ${parent.name}` : "";
      return `[class ${fn.name || "(anonymous)"}${ext}]`;
    }
    return fn.name ? `[Function: ${fn.name}]` : "[Function (anonymous)]";
  }

  function ctorName(obj) {
    const proto = Object.getPrototypeOf(obj);
    if (proto === null) return "[Object: null prototype]";
    return typeof proto.constructor === "function" ? proto.constructor.name : "";
  }

  function errorText(err) {
    const head = `${err.name}: ${err.message}`;
    return typeof err.stack === "string" && err.stack.trim() ? `${head}\n${err.stack.trimEnd()}` : head;
  }

  function wrap(prefix, open, close, items, level) {
    if (!items.length) return `${prefix}${open}${close}`;
    const flat = `${prefix}${open} ${items.join(", ")} ${close}`;
    if (flat.length <= 72 && !flat.includes("\n")) return flat;
    const pad = "  ".repeat(level + 1);
    return `${prefix}${open}\n${pad}${items.join(`,\n${pad}`)}\n${"  ".repeat(level)}${close}`;
  }

  function inspect(value, depth, seen, level) {
    seen = seen || [];
    level = level || 0;
    switch (typeof value) {
      case "undefined": return "undefined";
      case "string": return quote(value);
      case "number": return Object.is(value, -0) ? "-0" : String(value);
      case "bigint": return `${value}n`;
      case "boolean": return String(value);
      case "symbol": return value.toString();
    }
    if (value === null) return "null";
    if (seen.includes(value)) return "[Circular]";
    if (typeof value === "function" && !Object.keys(value).length) return fnLabel(value);
    if (value instanceof Error) return errorText(value);
    if (value instanceof Date) return isNaN(value) ? "Invalid Date" : value.toISOString();
    if (value instanceof RegExp) return String(value);
    const name = ctorName(value);
    if (depth < 0) return Array.isArray(value) ? "[Array]" : `[${name || "Object"}]`;
    seen = seen.concat([value]);
    const child = (v) => inspect(v, depth - 1, seen, level + 1);
    if (Array.isArray(value) || (ArrayBuffer.isView(value) && !(value instanceof DataView))) {
      const items = Array.from(value.slice(0, 100), child);
      if (value.length > 100) items.push(`... ${value.length - 100} more items`);
      return wrap(name === "Array" ? "" : `${name}(${value.length}) `, "[", "]", items, level);
    }
    if (value instanceof Map) return wrap(`Map(${value.size}) `, "{", "}", Array.from(value, ([k, v]) => `${child(k)} => ${child(v)}`), level);
    if (value instanceof Set) return wrap(`Set(${value.size}) `, "{", "}", Array.from(value, child), level);
    const items = Object.keys(value).map((k) => `${IDENT.test(k) ? k : quote(k)}: ${child(value[k])}`);
    const prefix = typeof value === "function" ? `${fnLabel(value)} ` : name && name !== "Object" ? `${name} ` : "";
    return wrap(prefix, "{", "}", items, level);
  }

  function substitute(spec, arg) {
    switch (spec) {
      case "s": return typeof arg === "string" ? arg : typeof arg === "object" && arg !== null ? inspect(arg, 1) : typeof arg === "bigint" ? `${arg}n` : String(arg);
      case "d": return typeof arg === "bigint" ? `${arg}n` : typeof arg === "object" && arg !== null ? "NaN" : String(Number(arg));
      case "i": return typeof arg === "bigint" ? `${arg}n` : String(parseInt(arg, 10));
      case "f": return String(parseFloat(arg));
      case "j": try { return JSON.stringify(arg); } catch (e) { return "[Circular]"; }
      case "o": case "O": return inspect(arg, inspectDepth);
      case "c": return "";
    }
  }

  function format(args) {
    const parts = [];
    let i = 0;
    if (typeof args[0] === "string") {
      i = 1;
      parts.push(args.length === 1 ? args[0] : args[0].replace(/%([sdifjoOc%])/g, (m, spec) => {
        if (spec === "%") return "%";
        return i < args.length ? substitute(spec, args[i++]) : m;
      }));
    }
    for (; i < args.length; i++) parts.push(typeof args[i] === "string" ? args[i] : inspect(args[i], inspectDepth));
    return parts.join(" ");
  }

  const emitText = (name, text) => write(name, wellFormed((groupIndent ? text.replace(/^/gm, groupIndent) : text) + "\n"));
  const log = (...args) => emitText("stdout", format(args));
  const error = (...args) => emitText("stderr", format(args));
  const describe = (err) => err instanceof Error ? `${err.name}: ${err.message}` : inspect(err, inspectDepth);
  const counts = new Map(), timers = new Map();
  const elapsed = (label, method) => {
    if (timers.has(label)) return `${label}: ${Date.now() - timers.get(label)}ms`;
    error(`Warning: No such label '${label}' for console.${method}()`);
  };

  const console = {
    log, info: log, debug: log, table: log, warn: error, error,
    dir: (value) => emitText("stdout", inspect(value, inspectDepth)),
    trace: (...args) => log(`Trace: ${format(args)}\n${(new Error().stack || "").trimEnd()}`),
    assert: (condition, ...args) => { if (!condition) error(args.length ? "Assertion failed:" : "Assertion failed", ...args); },
    count: (label = "default") => { const n = (counts.get(label) || 0) + 1; counts.set(label, n); log(`${label}: ${n}`); },
    countReset: (label = "default") => { counts.delete(label); },
    time: (label = "default") => { timers.set(label, Date.now()); },
    timeLog: (label = "default", ...args) => { const t = elapsed(label, "timeLog"); if (t) log(t, ...args); },
    timeEnd: (label = "default") => { const t = elapsed(label, "timeEnd"); if (t) log(t); timers.delete(label); },
    group: (...args) => { if (args.length) log(...args); groupIndent += "  "; },
    groupCollapsed: (...args) => console.group(...args),
    groupEnd: () => { groupIndent = groupIndent.slice(2); },
  };

  // Every promise made by `then` (so `catch` and `finally` too) is watched. One that
  // rejects and still has no handler once the cell has settled is reported on stderr.
  const promiseThen = Promise.prototype.then;
  const handled = new WeakSet(), watched = new WeakSet();
  let rejections = [];
  function watch(p) {
    if (watched.has(p)) return;
    watched.add(p);
    promiseThen.call(p, undefined, (err) => { rejections.push([p, err]); });
  }
  Object.defineProperty(Promise.prototype, "then", {
    value: function then(onFulfilled, onRejected) {
      if (Object(this) === this) handled.add(this);
      const derived = promiseThen.call(this, onFulfilled, onRejected);
      watch(derived);
      return derived;
    },
    writable: true, configurable: true, enumerable: false,
  });
  function flushRejections() {
    const pending = rejections;
    rejections = [];
    for (const [p, err] of pending) if (!handled.has(p)) error(`Uncaught (in promise) ${describe(err)}`);
  }

  const checkCallback = (fn) => {
    if (typeof fn !== "function") throw new TypeError(`The "callback" argument must be of type function. Received ${inspect(fn, 0)}`);
  };

  // Timers are driven from Python after the cell's own code: `runDue` fires the
  // earliest due callback, `timerWait` says how long until the next one. All kinds share one id space.
  const queue = new Map();
  let timerSeq = 0, cell = 0;
  function schedule(fn, delay, args, repeat) {
    checkCallback(fn);
    const id = ++timerSeq;
    queue.set(id, { id, fn, args, delay, repeat, cell, due: Date.now() + delay, seq: id });
    return id;
  }
  const clamp = (ms) => { ms = Number(ms); return ms >= 1 && ms <= 2147483647 ? Math.floor(ms) : 1; };
  const cancel = (id) => { queue.delete(Number(id)); };
  function earliest() {
    let next = null;
    for (const t of queue.values()) if (!next || t.due < next.due || (t.due === next.due && t.seq < next.seq)) next = t;
    return next;
  }
  function runDue() {
    const t = earliest();
    if (!t || t.due > Date.now()) return false;
    if (t.repeat) Object.assign(t, { due: Date.now() + t.delay, seq: ++timerSeq });
    else queue.delete(t.id);
    try { t.fn.apply(g, t.args); } catch (err) { error(`Uncaught ${describe(err)}`); }
    return true;
  }
  // -1 when nothing keeps the cell waiting. Intervals left over from earlier cells only tick alongside.
  function timerWait() {
    for (const t of queue.values()) if (!t.repeat || t.cell === cell) return Math.max(0, earliest().due - Date.now());
    return -1;
  }

  function setTimeout(fn, ms, ...args) { return schedule(fn, clamp(ms), args, false); }
  function setInterval(fn, ms, ...args) { return schedule(fn, clamp(ms), args, true); }
  function setImmediate(fn, ...args) { return schedule(fn, 0, args, false); }
  function queueMicrotask(fn) {
    checkCallback(fn);
    promiseThen.call(Promise.resolve(), () => {
      try { fn(); } catch (err) { error(`Uncaught ${describe(err)}`); }
    });
  }

  function prompt(message = "", password = false) {
    const reply = JSON.parse(readInput(wellFormed(message), Boolean(password)));
    if (!reply.ok) throw new Error(reply.error);
    return reply.value;
  }

  function errorInfo(err) {
    if (err instanceof Error) {
      const ename = wellFormed(err.name), evalue = wellFormed(err.message);
      const stack = typeof err.stack === "string" ? wellFormed(err.stack).split("\n").filter((l) => l.trim()) : [];
      return { ename, evalue, traceback: [`${ename}: ${evalue}`].concat(stack) };
    }
    const text = wellFormed(inspect(err, inspectDepth));
    return { ename: "Uncaught", evalue: text, traceback: [`Uncaught ${text}`] };
  }

  const globalEval = eval;
  function run(source, depth) {
    inspectDepth = depth;
    groupIndent = "";
    cell++;
    try {
      const value = globalEval(source);
      if (value instanceof Promise) watch(value);
      return JSON.stringify({ ok: true, text: wellFormed(inspect(value, depth)) });
    }
    catch (err) { return JSON.stringify(Object.assign({ ok: false }, errorInfo(err))); }
  }

  Object.assign(g, { global: g, console, prompt, queueMicrotask, setTimeout, setInterval, setImmediate,
    clearTimeout: cancel, clearInterval: cancel, clearImmediate: cancel });
  const hooks = { run, inspect, format, runDue, timerWait, flushRejections };
  Object.defineProperty(g, "__jsmini", { value: Object.freeze(hooks), enumerable: false });
})(globalThis);
"""


def _wellformed(text:str)->str:
    "Replace lone UTF-16 surrogates with U+FFFD so `text` can be encoded as UTF-8."
    return text.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


def _error(ename:str, evalue:str, traceback:list[str]|None=None)->dict:
    if traceback is None: traceback = [f"{ename}: {evalue}"]
    return dict(ename=_wellformed(ename), evalue=_wellformed(evalue), traceback=[_wellformed(line) for line in traceback])


class JsBridge:
    def __init__(self, request_input: Callable[[str, bool], str]|None=None, inspect_depth:int=2, timer_wait:float=5.0):
        "Create the persistent QuickJS context that every cell runs in."
        self.context = quickjs.Context()
        self.inspect_depth = inspect_depth
        self.timer_wait = timer_wait
        self._request_input = request_input
        self._stream_sender = None
        self._allow_stdin = False
        self.context.add_callable(WRITE_HOOK, self._write)
        self.context.add_callable(INPUT_HOOK, self._input)
        self.context.eval(PRELUDE)

    def set_stream_sender(self, sender: Callable[[str, str], None]|None): self._stream_sender = sender

    def _write(self, name:str, text:str):
        if self._stream_sender is None or not text:
            log.debug("dropping %s output with no active request", name)
            return None
        self._stream_sender(str(name), _wellformed(str(text)))
        return None

    def _input(self, prompt:str, password:bool)->str:
        "Answer a JS `prompt()` through the stdin channel, as a JSON outcome."
        if self._request_input is None or not self._allow_stdin: return json.dumps(dict(ok=False, error=NO_STDIN))
        try: value = self._request_input(str(prompt), bool(password))
        except (KeyboardInterrupt, RuntimeError, TimeoutError) as exc:
            return json.dumps(dict(ok=False, error=f"input request failed: {type(exc).__name__}: {exc}"))
        return json.dumps(dict(ok=True, value=value))

    @contextmanager
    def _request_io(self, allow_stdin:bool):
        prev = self._allow_stdin
        self._allow_stdin = allow_stdin
        try: yield
        finally: self._allow_stdin = prev

    def _drain_jobs(self):
        "Run queued promise reactions so `then` callbacks see this cell's output hooks."
        while self.context.execute_pending_job(): pass

    def settle(self):
        "Drain promise jobs and due timers, waiting up to `timer_wait` seconds for pending timeouts."
        end = time.monotonic() + self.timer_wait
        while True:
            self._drain_jobs()
            if time.monotonic() > end: break
            if self.context.eval("__jsmini.runDue()"): continue
            wait = self.context.eval("__jsmini.timerWait()") / 1000
            # Timeouts due past the budget stay queued and fire while a later cell settles.
            if wait < 0 or time.monotonic() + wait > end: break
            time.sleep(wait)
        self.context.eval("__jsmini.flushRejections()")

    def evaluate(self, source:str)->dict:
        "Evaluate already-transformed `source`; return the JS-side outcome dict."
        try: raw = self.context.eval(f"__jsmini.run({json.dumps(source)}, {int(self.inspect_depth)})")
        except quickjs.JSException as exc: return dict(ok=False, **_error("InternalError", str(exc)))
        return json.loads(raw)

    def execute(self, code:str, allow_stdin:bool=False)->dict:
        "Transform and run `code`; return `result` (mime bundle) or `error` (ename/evalue/traceback)."
        try: source = transform(code)
        except SyntaxError as exc: return dict(result=None, error=_error(type(exc).__name__, str(exc)))
        with self._request_io(bool(allow_stdin)):
            outcome = self.evaluate(source)
            self.settle()
        if not outcome.get("ok"):
            return dict(result=None, error=_error(outcome["ename"], outcome["evalue"], outcome.get("traceback")))
        return dict(result={"text/plain": _wellformed(outcome["text"])}, error=None)
