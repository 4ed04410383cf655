"Signed multipart message codec for the Jupyter wire protocol."
import hmac, uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from jupyter_client.session import DELIM, Session, json_packer, json_unpacker

PROTOCOL_VERSION = "5.3"
PAYLOAD_PARTS = ("header", "parent_header", "metadata", "content")

__all__ = ["DELIM", "PROTOCOL_VERSION", "Message", "MalformedMessage", "AuthenticationFailure", "Codec", "encode", "decode"]


class MalformedMessage(ValueError):
    "Frames that do not form a wire message: missing delimiter, short payload or bad JSON."


class AuthenticationFailure(ValueError):
    "Message signature does not match its payload."


@dataclass(frozen=True)
class Message:
    identities: tuple
    header: dict
    parent_header: dict
    metadata: dict
    content: dict
    signature: str = ""
    buffers: tuple = field(default_factory=tuple)

    @property
    def msg_type(self)->str: return self.header["msg_type"]

    @property
    def msg_id(self)->str: return self.header.get("msg_id", "")


class Codec:
    def __init__(self, key:bytes|str=b"", signature_scheme:str="hmac-sha256"):
        "Codec signing with `key` using `signature_scheme`; an empty key disables signing."
        if isinstance(key, str): key = key.encode()
        self.session = Session(key=key, signature_scheme=signature_scheme)

    def sign(self, parts:list[bytes])->bytes: return self.session.sign(parts)

    def header(self, msg_type:str, parent_header:dict|None=None)->dict:
        "Fresh header for `msg_type`, taking username and session from `parent_header`."
        parent_header = parent_header or {}
        return dict(msg_id=uuid.uuid4().hex, username=parent_header.get("username", ""), session=parent_header.get("session", ""),
            msg_type=msg_type, version=PROTOCOL_VERSION, date=datetime.now(timezone.utc).isoformat())

    def encode(self, identities, msg_type:str, content:dict, parent_header:dict|None=None, metadata:dict|None=None,
        buffers=None, header:dict|None=None)->list[bytes]:
        "Serialize and sign a new message of `msg_type` replying to `parent_header`."
        if header is None: header = self.header(msg_type, parent_header)
        parts = [json_packer(o) for o in (header, parent_header or {}, metadata or {}, content or {})]
        return [bytes(i) for i in identities or []] + [DELIM, self.sign(parts)] + parts + [bytes(b) for b in buffers or []]

    def decode(self, frames)->Message:
        "Split, authenticate and parse `frames` into a `Message`."
        frames = [bytes(f) for f in frames]
        try: identities, rest = self.session.feed_identities(frames)
        except ValueError as exc: raise MalformedMessage("delimiter not found in frames") from exc
        if len(rest) < 1 + len(PAYLOAD_PARTS):
            raise MalformedMessage(f"expected signature and {len(PAYLOAD_PARTS)} payload frames, got {len(rest)}")
        signature, parts, buffers = rest[0], rest[1:5], rest[5:]
        if not hmac.compare_digest(signature, self.sign(parts)): raise AuthenticationFailure("invalid message signature")
        payload = {}
        for name, raw in zip(PAYLOAD_PARTS, parts):
            try: value = json_unpacker(raw)
            except ValueError as exc: raise MalformedMessage(f"{name} is not valid JSON: {exc}") from exc
            if not isinstance(value, dict): raise MalformedMessage(f"{name} must be a JSON object")
            payload[name] = value
        if not isinstance(payload["header"].get("msg_type"), str): raise MalformedMessage("header has no msg_type")
        return Message(identities=tuple(identities), signature=signature.decode("ascii", "replace"), buffers=tuple(buffers), **payload)


def encode(identities, msg_type:str, content:dict, parent_header:dict|None=None, metadata:dict|None=None, key:bytes|str=b"")->list[bytes]:
    return Codec(key).encode(identities, msg_type, content, parent_header, metadata)


def decode(frames, key:bytes|str=b"")->Message: return Codec(key).decode(frames)
