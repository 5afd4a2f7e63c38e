"""Unit tests for the streaming gzip compressor."""

import gzip

import pytest

from coldcopy.compression import GzipStreamCompressor


def test_chunked_input_forms_one_gzip_member() -> None:
    """
    Tests that chunk-wise compression yields a valid gzip stream.

    Assert:
        - The concatenated output decompresses to the concatenated input.
        - Byte counters match what went in and what came out.
    """
    compressor: GzipStreamCompressor = GzipStreamCompressor(level=6)
    chunks = [b"line %d\n" % i * 100 for i in range(50)]

    out: bytes = b"".join(compressor.compress(chunk) for chunk in chunks)
    out += compressor.flush()

    assert gzip.decompress(out) == b"".join(chunks)
    assert compressor.bytes_in == sum(len(chunk) for chunk in chunks)
    assert compressor.bytes_out == len(out)
    assert compressor.bytes_out < compressor.bytes_in


def test_flush_is_terminal() -> None:
    """Tests that a flushed compressor refuses further input."""
    compressor: GzipStreamCompressor = GzipStreamCompressor()
    data: bytes = compressor.flush()

    assert gzip.decompress(data) == b""
    assert compressor.flush() == b""
    with pytest.raises(ValueError):
        compressor.compress(b"more")
