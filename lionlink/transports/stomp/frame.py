from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

from lionlink.errors import StompFrameError

logger = logging.getLogger(__name__)

NULL = "\0"
HEADER_SEPARATOR = "\n\n"
CRLF_HEADER_SEPARATOR = "\r\n\r\n"


def _split_head(text: str) -> tuple[str, str]:
    """Split at the first blank line; LF and CRLF framing are both accepted."""
    best: Optional[tuple[int, str]] = None
    for sep in (HEADER_SEPARATOR, CRLF_HEADER_SEPARATOR):
        index = text.find(sep)
        if index >= 0 and (best is None or index < best[0]):
            best = (index, sep)
    if best is None:
        raise StompFrameError("No header/body separator in frame")
    index, sep = best
    return text[:index], text[index + len(sep):]


@dataclass
class StompFrame:
    command: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @classmethod
    def from_text(cls, raw: Union[str, bytes]) -> "StompFrame":
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        # Heart-beats and stray EOLs may precede a frame.
        text = raw.lstrip("\r\n")
        head, rest = _split_head(text)

        lines = head.split("\n")
        # A CR before the first LF means the sender uses CRLF line endings;
        # otherwise a trailing CR belongs to the header value.
        crlf = lines[0].endswith("\r")
        if crlf:
            lines = [line[:-1] if line.endswith("\r") else line for line in lines]
        command = lines[0]
        if not command:
            raise StompFrameError("Frame has an empty command line")

        headers: dict[str, str] = {}
        for line in lines[1:]:
            if not line:
                continue
            key, colon, value = line.partition(":")
            if not colon or not key:
                logger.debug("stomp_header_skipped", extra={"details": {"line": line[:80]}})
                continue
            # First occurrence wins for repeated headers.
            headers.setdefault(key, value)

        body = rest.split(NULL, 1)[0]
        return cls(command=command, headers=headers, body=body)

    def encode(self) -> str:
        return encode(self.command, self.headers, self.body)

    def as_dict(self) -> dict:
        return {"command": self.command, "headers": dict(self.headers), "body": self.body}


def encode(command: str, headers: Optional[dict[str, str]] = None, body: str = "") -> str:
    lines = [command]
    for key, value in (headers or {}).items():
        lines.append(f"{key}:{value}")
    return "\n".join(lines) + "\n" + "\n" + body + NULL


def decode(raw: Union[str, bytes]) -> Optional[StompFrame]:
    """Parse one complete frame; returns None when ``raw`` is not a frame."""
    try:
        return StompFrame.from_text(raw)
    except StompFrameError:
        return None
