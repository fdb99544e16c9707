"""Incremental line reassembly for chunked upstream bodies."""

from __future__ import annotations

import codecs
from typing import List, Optional, Union


class LineReassembler:
    """Turn arbitrarily split byte chunks into complete ``\\n``-delimited lines.

    The incremental decoder keeps any partial UTF-8 sequence between calls, so
    ``buffer`` only ever holds decoded text past the last newline. Create one
    instance per upstream response.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self.buffer = ""

    def feed(self, chunk: Union[bytes, bytearray, str]) -> List[str]:
        """Consume one chunk and return the lines it completed, in order."""
        if not chunk:
            return []
        if isinstance(chunk, str):
            text = chunk
        else:
            text = self._decoder.decode(bytes(chunk))
        if not text:
            return []
        parts = (self.buffer + text).split("\n")
        self.buffer = parts.pop()
        return parts

    def flush(self) -> Optional[str]:
        """Return the unterminated tail once the upstream body has ended."""
        self.buffer += self._decoder.decode(b"", final=True)
        tail, self.buffer = self.buffer, ""
        return tail or None
