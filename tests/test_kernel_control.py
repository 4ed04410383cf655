import time
from .kernel_utils import *


def test_kernel_info_shell(kernel):
    _, kc = kernel
    msg_id = kc.kernel_info()
    content = kc.shell_reply(msg_id)["content"]
    assert content["status"] == "ok"
    assert content["protocol_version"] == "5.3"
    assert content["implementation"] == "jsmini"
    assert content["language_info"]["name"] == "javascript"
    assert content["language_info"]["file_extension"] == ".js"
    assert isinstance(content["help_links"], list)


def test_kernel_info_no_status(kernel):
    _, kc = kernel
    msg_id = kc.kernel_info()
    kc.shell_reply(msg_id)
    assert no_msg(kc.get_iopub_msg, lambda m: parent_id(m) == msg_id)


def test_kernel_info_control(kernel):
    _, kc = kernel
    msg_id = kc.control_send("kernel_info_request")
    content = kc.control_reply(msg_id)["content"]
    assert content["implementation"] == "jsmini"
    assert content["language_info"]["name"] == "javascript"


def test_control_answers_while_shell_busy(kernel):
    _, kc = kernel
    exec_id = kc.execute("const stop = Date.now() + 1500; while (Date.now() < stop) {}")
    wait_for_status(kc, "busy")
    start = time.monotonic()
    kc.control_reply(kc.control_send("kernel_info_request"))
    assert time.monotonic() - start < 1.0
    kc.shell_reply(exec_id)


def test_unknown_control_ignored(kernel):
    _, kc = kernel
    msg_id = kc.control_send("interrupt_request")
    assert no_msg(kc.control_channel.get_msg, lambda m: parent_id(m) == msg_id)
    kc.exec_ok("1")


def test_shutdown_exits_cleanly():
    with start_kernel() as (km, kc):
        msg_id = kc.control_send("shutdown_request", restart=False)
        reply = kc.control_reply(msg_id)
        assert reply["content"]["status"] == "ok"
        assert reply["content"]["restart"] is False
        proc = km.provisioner.process
        assert proc.wait(timeout=TIMEOUT) == 0
