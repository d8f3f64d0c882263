"""
Host header rewriting for the remote -> local leg.

Requests reach the broker addressed to the public tunnel hostname. When the
local target is reached through an explicit alias, the ``Host`` header is
replaced with that alias so the local server sees itself addressed directly.

Only the header block of the first message on a connection is examined.
Everything after the blank line that ends it (body, chunked payloads, later
traffic on the same socket) is forwarded as is.
"""

CRLF = b"\r\n"
HOST_HEADER = b"host"

# Longest partial line kept while waiting for its CRLF
MAX_HEADER_LINE = 65536


class HeaderHostRewriter:
    """Line-oriented byte transform replacing the Host header value."""

    def __init__(self, host: str):
        """
        Initialize rewriter.

        Args:
            host: Value to put in the Host header.
        """
        self.host = host.encode()
        self._buffer = bytearray()
        self._headers_done = False

    @property
    def headers_done(self) -> bool:
        """True once the header block has been passed through."""
        return self._headers_done

    def feed(self, data: bytes) -> bytes:
        """
        Consume a chunk and return the bytes that can be forwarded now.

        Incomplete header lines are held back until the rest arrives.
        """
        if self._headers_done:
            return data

        self._buffer += data
        out = bytearray()

        while not self._headers_done:
            end = self._buffer.find(CRLF)
            if end < 0:
                break
            line = bytes(self._buffer[: end + 2])
            del self._buffer[: end + 2]
            if line == CRLF:
                self._headers_done = True
            out += self._rewrite_line(line)

        if not self._headers_done and len(self._buffer) > MAX_HEADER_LINE:
            # Not HTTP, stop looking
            self._headers_done = True

        if self._headers_done:
            out += self._buffer
            self._buffer.clear()

        return bytes(out)

    def flush(self) -> bytes:
        """Return whatever partial line is still buffered."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data

    def _rewrite_line(self, line: bytes) -> bytes:
        name, sep, value = line.partition(b":")
        if not sep or name.lower() != HOST_HEADER:
            return line
        padding = value[: len(value) - len(value.lstrip(b" \t"))]
        return name + b":" + padding + self.host + CRLF
