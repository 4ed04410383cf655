import asyncio, contextvars, json, logging, os, queue, signal, sys, threading, time, traceback
from contextlib import contextmanager
from collections import deque
from dataclasses import dataclass
from enum import Enum
from importlib.metadata import PackageNotFoundError, version
from fastcore.basics import store_attr
import zmq, zmq.asyncio
from .bridge import JsBridge
from .wire import AuthenticationFailure, Codec, MalformedMessage, Message, PROTOCOL_VERSION
from . import debug as _dbg_mod

log = logging.getLogger("jsmini.kernel")
_debug = _dbg_mod.enabled
_dbg_lock = threading.Lock()
def dbg(*args, **kw):
    if _debug:
        with _dbg_lock: print("[jsmini]", *args, **kw, file=sys.__stderr__, flush=True)

BIND_TIMEOUT = 10.0
critical_threads = {"heartbeat", "iopub", "stdin-router", "shell-router", "control-router"}

def _install_thread_excepthook(kernel: "JsKernel"):
    prev = threading.excepthook
    def hook(args):
        try: prev(args)
        except Exception: pass
        name = getattr(args.thread, "name", "")
        if name not in critical_threads: return
        log.error("Critical thread crashed: %s", name, exc_info=(args.exc_type, args.exc_value, args.exc_traceback))
        kernel.shutdown_event.set()
        kernel.shell.stop()
    threading.excepthook = hook
    return prev

shell_stop = object()


class TransportBindFailure(RuntimeError):
    "A channel socket could not bind its endpoint."


class ThreadBoundAsyncQueue:
    "Thread-safe put + asyncio get once bound to an event loop."

    def __init__(self):
        self.loop, self.q, self.pending, self.lock = None, None, deque(), threading.Lock()
        self.suppress_late = False
        self.bound_once = False

    def bind(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.q = asyncio.Queue()
        self.bound_once = True
        with self.lock:
            for item in self.pending: self.q.put_nowait(item)
            self.pending.clear()

    def put(self, item):
        if self.loop is None or self.q is None:
            if self.bound_once:
                if not self.suppress_late: log.error("Queue put after loop lost; dropping")
                return
            with self.lock: self.pending.append(item)
            return
        try: self.loop.call_soon_threadsafe(self.q.put_nowait, item)
        except RuntimeError:
            if not self.suppress_late: log.error("Queue put after loop closed; dropping")

    async def get(self):
        if self.q is None: raise RuntimeError("queue not bound")
        return await self.q.get()

    def suppress_late_puts(self): self.suppress_late = True


@dataclass
class ConnectionInfo:
    transport:str
    ip:str
    shell_port:int
    iopub_port:int
    stdin_port:int
    control_port:int
    hb_port:int
    key:str
    signature_scheme:str = "hmac-sha256"

    @classmethod
    def from_dict(cls, data:dict)->"ConnectionInfo":
        return cls(transport=data.get("transport", "tcp"), ip=data.get("ip", "127.0.0.1"), shell_port=int(data["shell_port"]),
            iopub_port=int(data["iopub_port"]), stdin_port=int(data["stdin_port"]), control_port=int(data["control_port"]),
            hb_port=int(data["hb_port"]), key=data.get("key", ""), signature_scheme=data.get("signature_scheme", "hmac-sha256"))

    @classmethod
    def from_file(cls, path:str)->"ConnectionInfo":
        "Load connection info from JSON connection file at `path`."
        with open(path, encoding="utf-8") as f: return cls.from_dict(json.load(f))

    @property
    def ports(self)->dict:
        return dict(control=self.control_port, shell=self.shell_port, stdin=self.stdin_port, hb=self.hb_port, iopub=self.iopub_port)

    def addr(self, port:int)->str: return f"{self.transport}://{self.ip}:{port}"


class ExecState(str, Enum):
    IDLE = "idle"
    BUSY = "busy"


def _env_float(name:str, default:float)->float:
    "Return float env var `name`, or `default` on missing/invalid."
    raw = os.environ.get(name)
    if raw is None: return default
    try: return float(raw)
    except ValueError: return default


def _env_int(name:str, default:int)->int:
    raw = os.environ.get(name)
    if raw is None: return default
    try: return int(raw)
    except ValueError: return default


class ChannelThread(threading.Thread):
    def __init__(self, context: zmq.Context, addr:str, name:str):
        "Daemon thread owning one channel socket bound at `addr`."
        super().__init__(daemon=True, name=name)
        store_attr("context,addr")
        self.stop_event = threading.Event()
        self.ready = threading.Event()
        self.bind_error = None

    def bind(self, sock_type:int)->zmq.Socket:
        "Create and bind a socket, recording any failure for the starting thread."
        sock = self.context.socket(sock_type)
        sock.linger = 0
        try: sock.bind(self.addr)
        except zmq.ZMQError as exc:
            sock.close(0)
            self.bind_error = exc
            raise
        finally: self.ready.set()
        return sock

    def stop(self): self.stop_event.set()


class HeartbeatThread(ChannelThread):
    def __init__(self, context: zmq.Context, addr:str):
        "Echo every heartbeat frame back to its sender."
        super().__init__(context, addr, "heartbeat")

    def run(self):
        # zmq.proxy loops inside libzmq, so echoes keep flowing while a cell runs.
        try: sock = self.bind(zmq.ROUTER)
        except zmq.ZMQError: return
        try: zmq.proxy(sock, sock)
        except zmq.ZMQError as exc:
            if exc.errno not in (zmq.ETERM, zmq.ENOTSOCK): log.error("Heartbeat stopped: %s", exc)
        finally: sock.close(0)


class IOPubThread(ChannelThread):
    "IOPub sender thread using a sync PUB socket with a bounded queue."

    def __init__(self, context: zmq.Context, addr:str, codec: Codec):
        super().__init__(context, addr, "iopub")
        self.codec = codec
        self.q = queue.Queue(maxsize=_env_int("JSMINI_IOPUB_QMAX", 10000))
        self.enqueued = 0
        self.sent = 0

    def send(self, msg_type:str, content:dict, parent_header:dict|None, metadata:dict|None=None):
        "Queue an IOPub message for send; drop on full queue."
        self.enqueued += 1
        try: self.q.put_nowait((msg_type, content, parent_header, metadata))
        except queue.Full:
            backlog = self.enqueued - self.sent
            if backlog in (100, 500, 1000): log.warning("IOPub queue full; dropping. enq=%d sent=%d", self.enqueued, self.sent)

    def run(self):
        try: sock = self.bind(zmq.PUB)
        except zmq.ZMQError: return
        dbg(f"iopub bound to {self.addr}")
        try:
            while True:
                item = self.q.get()
                if item is None or self.stop_event.is_set(): break
                msg_type, content, parent_header, metadata = item
                if msg_type == "status": dbg(f"iopub SEND status state={content.get('execution_state')}")
                else: dbg(f"iopub SEND {msg_type}")
                try: frames = self.codec.encode([msg_type.encode()], msg_type, content, parent_header, metadata)
                except (TypeError, ValueError) as exc:
                    log.error("iopub: dropping unencodable %s: %s", msg_type, exc)
                    continue
                sock.send_multipart(frames)
                self.sent += 1
        finally: sock.close(0)

    def stop(self):
        self.stop_event.set()
        try: self.q.put_nowait(None)
        except queue.Full:
            while True:
                try: self.q.get_nowait()
                except queue.Empty: break
            self.q.put_nowait(None)


class StdinRouterThread(ChannelThread):
    def __init__(self, context: zmq.Context, addr:str, codec: Codec):
        "Initialize stdin router for input_request/reply."
        super().__init__(context, addr, "stdin-router")
        self.codec = codec
        self.pending_lock = threading.Lock()
        self.requests = queue.Queue()
        self.pending = {}
        self.pending_by_ident = {}

    def request_input(self, prompt:str, password:bool, parent: Message, timeout:float|None=None)->str:
        "Send input_request and wait for input_reply; honors `timeout`."
        response_queue = queue.Queue()
        self.requests.put((prompt, password, parent, response_queue))
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self.stop_event.is_set(): raise RuntimeError("stdin router stopped")
            wait = 0.1
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0: raise TimeoutError("timed out waiting for input reply")
                wait = min(wait, remaining)
            try: return response_queue.get(timeout=wait)
            except queue.Empty: continue

    def run(self):
        "Route input_reply messages to waiting callers."
        try: sock = self.bind(zmq.ROUTER)
        except zmq.ZMQError: return
        try:
            poller = zmq.Poller()
            poller.register(sock, zmq.POLLIN)
            while not self.stop_event.is_set():
                self._drain_requests(sock)
                events = dict(poller.poll(50))
                if sock in events and events[sock] & zmq.POLLIN: self._route_reply(sock.recv_multipart())
        finally: sock.close(0)

    def _route_reply(self, frames:list[bytes]):
        try: msg = self.codec.decode(frames)
        except AuthenticationFailure:
            log.warning("stdin: rejected message with bad signature")
            return
        except MalformedMessage as err:
            log.warning("stdin: dropping malformed message: %s", err)
            return
        if msg.msg_type != "input_reply": return
        waiter = None
        with self.pending_lock:
            pending = self.pending.pop(msg.parent_header.get("msg_id"), None)
            if pending is not None:
                key, waiter = pending
                self._forget(key, waiter)
            elif waiters := self.pending_by_ident.get(msg.identities):
                waiter = waiters.popleft()
                self.pending = {k: v for k, v in self.pending.items() if v[1] is not waiter}
                if not waiters: self.pending_by_ident.pop(msg.identities, None)
        if waiter is not None: waiter.put(msg.content.get("value", ""))

    def _forget(self, key:tuple, waiter:queue.Queue):
        waiters = self.pending_by_ident.get(key)
        if not waiters: return
        try: waiters.remove(waiter)
        except ValueError: pass
        if not waiters: self.pending_by_ident.pop(key, None)

    def _drain_requests(self, sock: zmq.Socket):
        while True:
            try: prompt, password, parent, waiter = self.requests.get_nowait()
            except queue.Empty: return
            header = self.codec.header("input_request", parent.header)
            sock.send_multipart(self.codec.encode(parent.identities, "input_request", dict(prompt=prompt, password=password),
                parent.header, header=header))
            with self.pending_lock:
                self.pending[header["msg_id"]] = (parent.identities, waiter)
                self.pending_by_ident.setdefault(parent.identities, deque()).append(waiter)


class RouterThread(ChannelThread):
    def __init__(self, context: zmq.asyncio.Context, addr:str, codec: Codec, handler, log_label:str):
        "Async ROUTER loop for shell/control sockets."
        super().__init__(context, addr, f"{log_label}-router")
        store_attr("codec,handler,log_label")
        self.loop = None
        self.outbox = ThreadBoundAsyncQueue()
        self.enqueued = 0
        self.sent = 0

    def reply(self, msg_type:str, content:dict, parent: Message):
        "Queue a reply to `parent`, routed back to its identities."
        self.enqueued += 1
        backlog = self.enqueued - self.sent
        if backlog in (1000, 2000, 5000): log.warning("%s backlog growing: enq=%d sent=%d", self.log_label, self.enqueued, self.sent)
        self.outbox.put((msg_type, content, parent))

    def stop(self):
        self.stop_event.set()
        self.outbox.suppress_late_puts()
        self.outbox.put(None)

    def run(self): asyncio.run(self._run())

    async def _run(self):
        self.loop = asyncio.get_running_loop()
        self.outbox.bind(self.loop)
        try: sock = self.bind(zmq.ROUTER)
        except zmq.ZMQError: return
        if hasattr(zmq, "ROUTER_HANDOVER"): sock.router_handover = 1
        tasks = [asyncio.create_task(self._send_loop(sock)), asyncio.create_task(self._recv_loop(sock))]
        try: await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks: task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            sock.close(0)
            self.loop = None

    async def _send_loop(self, sock: zmq.asyncio.Socket):
        while True:
            item = await self.outbox.get()
            if item is None: return
            msg_type, content, parent = item
            dbg(f"{self.log_label} SEND {msg_type} parent={parent.msg_id[:8]}")
            try:
                await sock.send_multipart(self.codec.encode(parent.identities, msg_type, content, parent.header))
                self.sent += 1
            except (TypeError, ValueError) as exc: log.error("%s: dropping unencodable %s: %s", self.log_label, msg_type, exc)
            except zmq.ZMQError as exc: log.error("%s send error: %s", self.log_label, exc, exc_info=exc)

    async def _recv_loop(self, sock: zmq.asyncio.Socket):
        while not self.stop_event.is_set():
            try: frames = await sock.recv_multipart()
            except zmq.ZMQError as exc:
                dbg(f"{self.log_label} RECV error: {exc}")
                return
            try: msg = self.codec.decode(frames)
            except AuthenticationFailure:
                log.warning("%s: rejected message with bad signature", self.log_label)
                continue
            except MalformedMessage as err:
                log.warning("%s: dropping malformed message: %s", self.log_label, err)
                continue
            dbg(f"{self.log_label} RECV {msg.msg_type} id={msg.msg_id[:8]}")
            _dbg_mod.tlog(log, f"{self.log_label} recv", msg)
            try: self.handler(msg)
            except Exception as exc: log.error("%s handler failed for %s", self.log_label, msg.msg_type, exc_info=exc)


class Shell:
    def __init__(self, kernel: "JsKernel", bridge: JsBridge|None=None):
        "Execution state machine: one persistent JS context, one request at a time."
        self.kernel = kernel
        self.bridge = bridge or JsBridge(request_input=self.request_input, inspect_depth=_env_int("JSMINI_INSPECT_DEPTH", 2),
            timer_wait=_env_float("JSMINI_TIMER_WAIT", 5.0))
        self.bridge.set_stream_sender(self._send_stream)
        self.parent_var = contextvars.ContextVar("parent", default=None)
        self.loop = None
        self.inbox = ThreadBoundAsyncQueue()
        self.execution_count = 0
        self.exec_state = ExecState.IDLE
        self.handlers = dict(kernel_info_request=self._handle_kernel_info, execute_request=self._handle_execute)

    def submit(self, msg: Message): self.inbox.put(msg)

    def stop(self):
        "Signal the shell loop to stop and wake it."
        self.inbox.suppress_late_puts()
        self.inbox.put(shell_stop)
        loop = self.loop
        if loop is not None and loop.is_running():
            try: loop.call_soon_threadsafe(loop.stop)
            except RuntimeError: pass

    def run_main(self):
        "Run the shell loop in the calling (main) thread until stopped."
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self.loop = loop
        self.inbox.bind(loop)
        loop.create_task(self._consume_queue())
        try: loop.run_forever()
        finally:
            pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
            for task in pending: task.cancel()
            if pending: loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.close()
            asyncio.set_event_loop(None)
            self.loop = None

    async def _consume_queue(self):
        while True:
            msg = await self.inbox.get()
            if msg is shell_stop:
                dbg("SHELL stopping")
                asyncio.get_running_loop().stop()
                return
            try: await self.handle_message(msg)
            except Exception as exc: log.error("Internal error in %s handler", msg.msg_type, exc_info=exc)
            dbg(f"DONE {msg.msg_type} id={msg.msg_id[:8]}")

    async def handle_message(self, msg: Message):
        "Dispatch one shell request by `msg_type`; unknown types are ignored."
        handler = self.handlers.get(msg.msg_type)
        if handler is None:
            dbg(f"IGNORE {msg.msg_type} id={msg.msg_id[:8]}")
            return
        token = self.parent_var.set(msg)
        try: await handler(msg)
        finally: self.parent_var.reset(token)

    def send_reply(self, msg_type:str, content:dict, parent: Message): self.kernel.queue_shell_reply(msg_type, content, parent)

    def _set_state(self, state: ExecState, parent: Message):
        self.exec_state = state
        self.kernel.iopub.status(parent, execution_state=state.value)

    @contextmanager
    def busy_idle(self, parent: Message):
        "Broadcast busy before work and idle after, whatever happens in between."
        self._set_state(ExecState.BUSY, parent)
        try: yield
        finally: self._set_state(ExecState.IDLE, parent)

    def _send_stream(self, name:str, text:str):
        parent = self.parent_var.get()
        if parent is None: return
        self.kernel.iopub.stream(parent, name=name, text=text)

    def request_input(self, prompt:str, password:bool)->str:
        "Forward a JS `prompt()` through the stdin channel for the current request."
        return self.kernel.stdin_router.request_input(prompt, password, self.parent_var.get())

    async def _handle_kernel_info(self, msg: Message): self.send_reply("kernel_info_reply", self.kernel.kernel_info_content(), msg)

    def _reply_content(self, error:dict|None)->dict:
        reply = dict(status="error" if error else "ok", execution_count=self.execution_count, user_expressions={}, payload=[])
        if error: reply |= error
        return reply

    async def _handle_execute(self, msg: Message):
        iopub = self.kernel.iopub
        code = msg.content.get("code")
        if not isinstance(code, str):
            if "code" in msg.content: error = dict(ename="InvalidField", evalue="code must be a string", traceback=[])
            else: error = dict(ename="MissingField", evalue="missing required fields: code", traceback=[])
            with self.busy_idle(msg):
                iopub.error(msg, **error)
                self.send_reply("execute_reply", self._reply_content(error), msg)
            return
        with self.busy_idle(msg):
            self.execution_count += 1
            count = self.execution_count
            iopub.execute_input(msg, code=code, execution_count=count)
            dbg(f"EXEC count={count} code={code[:30]!r}")
            try: result = self.bridge.execute(code, allow_stdin=bool(msg.content.get("allow_stdin", False)))
            except Exception as exc:
                log.warning("Internal error running cell", exc_info=exc)
                tb = traceback.format_exception(type(exc), exc, exc.__traceback__)
                result = dict(result=None, error=dict(ename=type(exc).__name__, evalue=str(exc), traceback=tb))
            error = result["error"]
            if error: iopub.error(msg, **error)
            else: iopub.execute_result(msg, dict(execution_count=count, data=result["result"], metadata={}))
            self.send_reply("execute_reply", self._reply_content(error), msg)


class IOPubCommand:
    def __init__(self, kernel: "JsKernel"):
        "Proxy iopub_send by attribute name."
        self.kernel = kernel

    def __getattr__(self, name:str):
        "Return a callable that sends the named IOPub message type."
        if name.startswith('_'): raise AttributeError(name)
        def _send(parent: Message|None, content:dict|None=None, **kwargs): self.kernel.iopub_send(name, parent, content, **kwargs)
        _send.__name__ = name
        return _send


class JsKernel:
    def __init__(self, connection: ConnectionInfo):
        "Create channel threads and the shell for `connection`; nothing binds until `start`."
        self.connection = connection
        self.codec = Codec(connection.key, connection.signature_scheme)
        self.context = zmq.Context.instance()
        self.async_context = zmq.asyncio.Context.shadow(self.context)
        addr = connection.addr
        self.hb = HeartbeatThread(self.context, addr(connection.hb_port))
        self.iopub_thread = IOPubThread(self.context, addr(connection.iopub_port), self.codec)
        self.stdin_router = StdinRouterThread(self.context, addr(connection.stdin_port), self.codec)
        self.shell_router = RouterThread(self.async_context, addr(connection.shell_port), self.codec, self.handle_shell_msg, "shell")
        self.control_router = RouterThread(self.async_context, addr(connection.control_port), self.codec, self.handle_control_msg, "control")
        self.shell = Shell(self)
        self.shutdown_event = threading.Event()
        self.shutdown_grace = _env_float("JSMINI_SHUTDOWN_GRACE", 1.0)
        self.iopub_cmd = None
        self.control_handlers = dict(kernel_info_request=self._handle_control_kernel_info, shutdown_request=self.handle_shutdown)

    @classmethod
    def from_file(cls, connection_file:str)->"JsKernel": return cls(ConnectionInfo.from_file(connection_file))

    @property
    def channels(self)->list[ChannelThread]: return [self.hb, self.iopub_thread, self.stdin_router, self.shell_router, self.control_router]

    def bind(self):
        "Start every channel thread; raise `TransportBindFailure` unless all five bound."
        for channel in self.channels: channel.start()
        failed = []
        for channel in self.channels:
            if not channel.ready.wait(timeout=BIND_TIMEOUT): failed.append(f"{channel.name} ({channel.addr}): timed out")
            elif channel.bind_error is not None: failed.append(f"{channel.name} ({channel.addr}): {channel.bind_error}")
        if failed:
            self.stop_channels()
            raise TransportBindFailure("could not bind " + "; ".join(failed))

    def start(self):
        "Bind all channels and serve shell requests on the calling thread until shutdown."
        _dbg_mod.setup()
        dbg("kernel starting...")
        prev_hook = _install_thread_excepthook(self)
        # Execution can't be cancelled, so an interrupt must not take the kernel down.
        prev_sigint = signal.signal(signal.SIGINT, signal.SIG_IGN)
        try:
            self.bind()
            dbg("kernel ready")
            self.shell.run_main()
        finally:
            threading.excepthook = prev_hook
            self.shutdown_event.set()
            self.stop_channels()
            signal.signal(signal.SIGINT, prev_sigint)

    def stop_channels(self):
        "Stop and join every channel thread except the heartbeat, which lives as long as the process."
        for channel in self.channels[1:]: channel.stop()
        for channel in self.channels[1:]:
            if channel.is_alive(): channel.join(timeout=1)

    def handle_shell_msg(self, msg: Message):
        "Hand a shell request to the shell loop; runs on the shell router thread."
        dbg(f"DISPATCH {msg.msg_type} id={msg.msg_id[:8]}")
        self.shell.submit(msg)

    def handle_control_msg(self, msg: Message):
        "Answer a control request on the control router thread; unknown types are ignored."
        handler = self.control_handlers.get(msg.msg_type)
        if handler is None:
            dbg(f"control IGNORE {msg.msg_type}")
            return
        handler(msg)

    def _handle_control_kernel_info(self, msg: Message): self.queue_control_reply("kernel_info_reply", self.kernel_info_content(), msg)

    def handle_shutdown(self, msg: Message):
        "Reply to shutdown_request and stop the shell loop, forcing exit if it stays busy."
        self.queue_control_reply("shutdown_reply", dict(status="ok", restart=bool(msg.content.get("restart", False))), msg)
        self.shutdown_event.set()
        self.shell.stop()
        timer = threading.Timer(self.shutdown_grace, self._force_exit)
        timer.daemon = True
        timer.start()

    def _force_exit(self):
        log.warning("Shell did not stop within %.1fs of shutdown_request; exiting", self.shutdown_grace)
        os._exit(0)

    def queue_shell_reply(self, msg_type:str, content:dict, parent: Message):
        _dbg_mod.tlog(log, "shell reply", parent)
        self.shell_router.reply(msg_type, content, parent)

    def queue_control_reply(self, msg_type:str, content:dict, parent: Message): self.control_router.reply(msg_type, content, parent)

    @property
    def iopub(self)->IOPubCommand:
        "Return cached IOPubCommand wrapper."
        if (proxy := self.iopub_cmd) is None: self.iopub_cmd = proxy = IOPubCommand(self)
        return proxy

    def iopub_send(self, msg_type:str, parent: Message|None, content:dict|None=None, metadata:dict|None=None, **kwargs):
        "Queue an IOPub message whose parent header is `parent`'s header."
        if kwargs: content = dict(content or {}) | kwargs
        if _dbg_mod.trace_msgs and parent is not None: _dbg_mod.tlog(log, f"iopub {msg_type}", parent)
        self.iopub_thread.send(msg_type, content or {}, parent.header if parent is not None else None, metadata)

    def kernel_info_content(self)->dict:
        "Build kernel_info_reply content."
        try: impl_version = version("jsmini")
        except PackageNotFoundError: impl_version = "0.0.0+local"
        return dict(status="ok", protocol_version=PROTOCOL_VERSION, implementation="jsmini", implementation_version=impl_version,
            language="javascript", banner="jsmini: JavaScript (QuickJS) for Jupyter",
            language_info=dict(name="javascript", version="ES2020", mimetype="text/javascript", file_extension=".js",
                pygments_lexer="javascript", codemirror_mode="javascript"),
            help_links=[dict(text="JavaScript Reference (MDN)", url="https://developer.mozilla.org/en-US/docs/Web/JavaScript"),
                dict(text="QuickJS", url="https://bellard.org/quickjs/")])


def run_kernel(connection_file:str):
    "Run kernel given a connection file path."
    kernel = JsKernel.from_file(connection_file)
    kernel.start()
