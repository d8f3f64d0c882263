"""One-directional stream relay used by both legs of a tunnel pair."""

import asyncio
from collections.abc import Callable

from quickportal.tunnel.header_rewriter import HeaderHostRewriter


async def relay_stream(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    chunk_size: int = 65536,
    rewriter: HeaderHostRewriter | None = None,
    on_chunk: Callable[[bytes], None] | None = None,
) -> bool:
    """
    Pipe data from reader to writer until EOF or error.

    The next read only happens once the writer has drained, so a slow
    destination stops the source from being read.

    Args:
        reader: AsyncIO stream reader.
        writer: AsyncIO stream writer.
        chunk_size: Maximum bytes per read.
        rewriter: Optional Host header rewriter applied before writing.
        on_chunk: Called with every raw chunk before it is forwarded.

    Returns:
        True if the reader hit EOF, False if either side failed.
    """
    while True:
        try:
            data = await reader.read(chunk_size)
            if not data:
                if rewriter:
                    tail = rewriter.flush()
                    if tail:
                        writer.write(tail)
                        await writer.drain()
                return True
            if on_chunk:
                on_chunk(data)
            if rewriter:
                data = rewriter.feed(data)
                if not data:
                    continue
            writer.write(data)
            await writer.drain()
        except OSError:
            return False
