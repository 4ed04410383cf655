"Debug switches for jsmini: env-gated logging, message tracing and faulthandler."
import faulthandler, logging, os, signal, sys

FALSY = {"", "0", "false", "no", "off"}
LOG_FORMAT = "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s"

def envbool(name: str)->bool: return os.environ.get(name, "").strip().lower() not in FALSY

enabled = envbool("JSMINI_DEBUG")
trace_msgs = envbool("JSMINI_DEBUG_MSGS")

def setup():
    "With JSMINI_DEBUG set, log everything to the real stderr and dump all thread stacks on SIGUSR1."
    if not enabled: return
    if not logging.getLogger().handlers: logging.basicConfig(level=logging.DEBUG, stream=sys.__stderr__, format=LOG_FORMAT)
    faulthandler.enable(file=sys.__stderr__, all_threads=True)
    if hasattr(signal, "SIGUSR1"): faulthandler.register(signal.SIGUSR1, file=sys.__stderr__, all_threads=True)

def tlog(log, prefix: str, msg):
    "Log one message's type, id and parent id when JSMINI_DEBUG_MSGS is set."
    if not trace_msgs: return
    log.warning("%s type=%s id=%s parent=%s", prefix, msg.msg_type, msg.msg_id, msg.parent_header.get("msg_id"))
