"""
Incremental server-sent-events decoding.

Frames end at a blank line. Inside a frame only "data:" lines carry
payload; event names, ids and comments are ignored. Each data line is
returned as its own payload, which also copes with servers that emit one
JSON object per line.
"""

DATA_PREFIX = "data:"


class SSEDecoder:
    """Accumulates text across reads and returns payloads of complete frames."""

    def __init__(self):
        self._buffer = ""
        self._pending_cr = False

    def feed(self, text: str) -> list[str]:
        """Add text from the transport; return payloads of frames it completed."""
        if self._pending_cr:
            text = "\r" + text
        # A CR at the end of a read may be the first half of a CRLF
        self._pending_cr = text.endswith("\r")
        if self._pending_cr:
            text = text[:-1]
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")
        payloads = []
        while "\n\n" in self._buffer:
            frame, self._buffer = self._buffer.split("\n\n", 1)
            payloads.extend(self._payloads(frame))
        return payloads

    def flush(self) -> list[str]:
        """Return payloads of a trailing frame left without its blank line."""
        frame, self._buffer = self._buffer, ""
        self._pending_cr = False
        return self._payloads(frame)

    @staticmethod
    def _payloads(frame: str) -> list[str]:
        payloads = []
        for line in frame.split("\n"):
            if not line.startswith(DATA_PREFIX):
                continue
            data = line[len(DATA_PREFIX):]
            if data.startswith(" "):
                data = data[1:]
            payloads.append(data)
        return payloads
