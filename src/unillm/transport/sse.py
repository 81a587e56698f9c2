from __future__ import annotations

"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Incremental decoder for server-sent event streams.

Only the trailing partial line is buffered between reads; completed chunks are
returned in exactly the order they were received.
"""

import codecs
import json
from typing import Any, Callable

from ..logging import get_logger

logger = get_logger("transport.sse")

TextExtractor = Callable[[dict[str, Any]], "str | None"]


class SSEDecoder:
    def __init__(self, extract_text: TextExtractor, *, end_marker: str | None = "[DONE]") -> None:
        self._extract_text = extract_text
        self._end_marker = end_marker
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, data: bytes | str) -> list[str]:
        """Consume one read and return the text chunks it completed."""
        if self.done:
            return []
        if isinstance(data, bytes):
            data = self._decoder.decode(data)
        self._buffer += data

        chunks: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            chunk = self._process_line(line)
            if chunk:
                chunks.append(chunk)
        return chunks

    def flush(self) -> list[str]:
        """Process whatever remains once the stream has closed."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        chunks: list[str] = []
        for line in rest.split("\n"):
            chunk = self._process_line(line)
            if chunk:
                chunks.append(chunk)
            if self.done:
                break
        return chunks

    def _process_line(self, line: str) -> str | None:
        line = line.rstrip("\r")
        if not line or line.startswith(":"):
            return None
        if not line.startswith("data:"):
            # event:, id:, retry: fields carry nothing we need.
            return None

        payload = line[5:].strip()
        if not payload:
            return None
        if self._end_marker is not None and payload == self._end_marker:
            self.done = True
            return None

        try:
            event = json.loads(payload)
        except ValueError:
            logger.debug("Skipping malformed stream chunk", extra={"chunk": payload[:200]})
            return None
        if not isinstance(event, dict):
            return None
        return self._extract_text(event)
