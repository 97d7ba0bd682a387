"""
stomp.py — Minimal STOMP 1.2 frame codec for text websockets.

The backend's message broker speaks STOMP over a websocket endpoint. Each
websocket message carries one or more NUL-terminated frames; a bare EOL is a
heart-beat. Only what the realtime channel needs is implemented: CONNECT,
SUBSCRIBE, UNSUBSCRIBE, SEND, DISCONNECT out; CONNECTED, MESSAGE, RECEIPT,
ERROR in.

Frame layout:

    COMMAND\n
    header1:value1\n
    header2:value2\n
    \n
    body^@
"""

import re
from dataclasses import dataclass, field
from typing import Optional

NULL = "\x00"
EOL = "\n"
HEARTBEAT = EOL

# CONNECT / CONNECTED headers are exempt from escaping (STOMP 1.2 §"Value Encoding").
_UNESCAPED_COMMANDS = {"CONNECT", "CONNECTED", "STOMP"}

_ESCAPES = [("\\", "\\\\"), ("\r", "\\r"), ("\n", "\\n"), (":", "\\c")]
_UNESCAPES = {"\\\\": "\\", "\\r": "\r", "\\n": "\n", "\\c": ":"}
_HEAD_END = re.compile(r"\r?\n\r?\n")


class StompProtocolError(Exception):
    """Raised for frames that cannot be parsed."""


@dataclass
class Frame:
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name, default)


def _escape(value: str) -> str:
    for raw, escaped in _ESCAPES:
        value = value.replace(raw, escaped)
    return value


def _unescape(value: str) -> str:
    out = []
    i = 0
    while i < len(value):
        pair = value[i:i + 2]
        if pair in _UNESCAPES:
            out.append(_UNESCAPES[pair])
            i += 2
        elif value[i] == "\\":
            raise StompProtocolError(f"Undefined escape sequence in header: {value!r}")
        else:
            out.append(value[i])
            i += 1
    return "".join(out)


def encode(frame: Frame) -> str:
    escape = frame.command not in _UNESCAPED_COMMANDS
    lines = [frame.command]
    for name, value in frame.headers.items():
        if escape:
            name, value = _escape(name), _escape(str(value))
        lines.append(f"{name}:{value}")
    return EOL.join(lines) + EOL + EOL + frame.body + NULL


def _decode_one(chunk: str) -> Frame:
    end = _HEAD_END.search(chunk)
    if end is None:
        raise StompProtocolError(f"Frame has no header terminator: {chunk[:80]!r}")
    head, body = chunk[: end.start()], chunk[end.end():]
    lines = head.replace("\r\n", EOL).split(EOL)
    command = lines[0].strip()
    if not command:
        raise StompProtocolError("Frame has no command")
    unescape = command not in _UNESCAPED_COMMANDS
    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, colon, value = line.partition(":")
        if not colon:
            raise StompProtocolError(f"Malformed header line: {line!r}")
        if unescape:
            name, value = _unescape(name), _unescape(value)
        # Repeated headers: the first occurrence wins.
        headers.setdefault(name, value)
    length = headers.get("content-length")
    if length is not None and length.isdigit():
        body = body.encode("utf-8")[: int(length)].decode("utf-8", errors="replace")
    return Frame(command=command, headers=headers, body=body)


def decode_frames(data: str) -> list[Frame]:
    """
    Split one websocket message into frames.

    Heart-beats (bare EOLs between frames) are skipped, so a pure heart-beat
    message decodes to [].
    """
    frames = []
    for chunk in data.split(NULL):
        chunk = chunk.lstrip("\r\n")
        if chunk:
            frames.append(_decode_one(chunk))
    return frames


def negotiate_heartbeat(client: tuple[int, int], server_header: Optional[str]) -> tuple[int, int]:
    """
    Resolve (send_every_ms, expect_every_ms) from the client's wish and the
    server's `heart-beat` header. 0 means disabled in that direction.
    """
    client_out, client_in = client
    try:
        server_out, server_in = (int(v) for v in (server_header or "0,0").split(","))
    except ValueError:
        server_out, server_in = 0, 0
    send_every = max(client_out, server_in) if client_out and server_in else 0
    expect_every = max(client_in, server_out) if client_in and server_out else 0
    return send_every, expect_every


# ── Frame builders ────────────────────────────────────────────────────────────

def connect_frame(host: str, heartbeat: tuple[int, int]) -> Frame:
    return Frame("CONNECT", {
        "accept-version": "1.2",
        "host": host,
        "heart-beat": f"{heartbeat[0]},{heartbeat[1]}",
    })


def subscribe_frame(subscription_id: str, destination: str) -> Frame:
    return Frame("SUBSCRIBE", {"id": subscription_id, "destination": destination, "ack": "auto"})


def unsubscribe_frame(subscription_id: str) -> Frame:
    return Frame("UNSUBSCRIBE", {"id": subscription_id})


def send_frame(destination: str, body: str, content_type: str = "application/json") -> Frame:
    return Frame("SEND", {
        "destination": destination,
        "content-type": content_type,
        "content-length": str(len(body.encode("utf-8"))),
    }, body)


def disconnect_frame() -> Frame:
    return Frame("DISCONNECT")
