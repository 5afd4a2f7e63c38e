"""Incremental gzip compression for streamed object bodies."""

import zlib

# wbits=31 selects the gzip container (16 + max window size).
_GZIP_WBITS: int = 16 + zlib.MAX_WBITS


class GzipStreamCompressor:
    """
    Compresses a byte stream chunk by chunk into a single gzip member.

    Output of `compress()` may be empty while zlib accumulates input; the
    remainder is emitted by `flush()`, after which the compressor cannot be
    reused.
    """

    content_encoding: str = "gzip"

    def __init__(self, level: int = 6) -> None:
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, _GZIP_WBITS)
        self._flushed: bool = False
        self.bytes_in: int = 0
        self.bytes_out: int = 0

    def compress(self, data: bytes) -> bytes:
        if self._flushed:
            raise ValueError("Compressor has already been flushed.")
        self.bytes_in += len(data)
        out: bytes = self._compressor.compress(data)
        self.bytes_out += len(out)
        return out

    def flush(self) -> bytes:
        if self._flushed:
            return b""
        self._flushed = True
        out: bytes = self._compressor.flush()
        self.bytes_out += len(out)
        return out
