"""
Defines the per-object transfer.

Each transfer streams one object from the source store into a compressed,
commit-on-close object at the destination. The source read and the
compress-and-upload side run as two coroutines joined by a bounded relay,
so neither the raw nor the compressed body is ever held in memory whole.
"""

import asyncio
import logging
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Protocol

from coldcopy.compression import GzipStreamCompressor
from coldcopy.exceptions import DestinationCommitError, SourceFetchError, TransferError
from coldcopy.relay import RelayClosedError, RelayReader, RelayWriter, open_relay

logger: logging.Logger = logging.getLogger(__name__)


class ObjectSource(Protocol):
    def iter_object(
        self, credential: object, container: str, name: str, chunk_size: int = ...
    ) -> AsyncIterator[bytes]: ...


class ObjectWriteStream(Protocol):
    bytes_written: int

    async def write(self, data: bytes) -> None: ...

    async def close(self) -> None: ...

    async def abort(self) -> None: ...


class ObjectSink(Protocol):
    def open_object_write_stream(self, bucket: str, key: str) -> ObjectWriteStream: ...


@dataclass(frozen=True)
class TransferSettings:
    """
    Tuning knobs for a single transfer.

    Attributes:
        chunk_size (int): Read size for the source body.
        relay_capacity (int): Bytes buffered between the read and upload sides.
        compression_level (int): gzip compression level.
    """

    chunk_size: int = 64 * 1024
    relay_capacity: int = 1024**2
    compression_level: int = 6


@dataclass(frozen=True)
class TransferOutcome:
    """
    The result of transferring one object.

    Attributes:
        container (str): The source container.
        object_name (str): The object name.
        error (TransferError, optional): The single recorded failure, if any.
        bytes_read (int): Uncompressed bytes consumed from the source.
        bytes_written (int): Compressed bytes written to the destination.
    """

    container: str
    object_name: str
    error: Optional[TransferError] = None
    bytes_read: int = 0
    bytes_written: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


async def _pump_source(
    source: ObjectSource,
    credential: object,
    container: str,
    name: str,
    relay: RelayWriter,
    chunk_size: int,
) -> None:
    """
    Copies the source body into the relay.

    A source failure closes the relay with the error, so the reading side
    stops too, and is re-raised.
    """
    try:
        async with aclosing(
            source.iter_object(credential, container, name, chunk_size)
        ) as chunks:
            async for chunk in chunks:
                await relay.write(chunk)
    except RelayClosedError:
        # The upload side gave up; its error is the one that counts.
        raise
    except SourceFetchError as e:
        await relay.close(e)
        raise
    except Exception as e:
        error: SourceFetchError = SourceFetchError(
            f"Reading '{container}/{name}' failed: {e}"
        )
        await relay.close(error)
        raise error from e
    await relay.close()


async def _compress_into(
    relay: RelayReader,
    compressor: GzipStreamCompressor,
    stream: ObjectWriteStream,
) -> None:
    """Compresses everything read from the relay into the write stream."""
    async for chunk in relay:
        data: bytes = compressor.compress(chunk)
        if data:
            await stream.write(data)
    tail: bytes = compressor.flush()
    if tail:
        await stream.write(tail)


async def _abort_quietly(stream: ObjectWriteStream, label: str) -> None:
    try:
        await stream.abort()
    except Exception as e:
        logger.warning(f"Failed to abort upload of '{label}': {e}")


async def _stream_object(
    source: ObjectSource,
    credential: object,
    container: str,
    object_name: str,
    sink: ObjectSink,
    bucket: str,
    settings: TransferSettings,
) -> TransferOutcome:
    relay_writer, relay_reader = open_relay(settings.relay_capacity)
    compressor: GzipStreamCompressor = GzipStreamCompressor(settings.compression_level)
    stream: ObjectWriteStream = sink.open_object_write_stream(bucket, object_name)
    pump: asyncio.Task[None] = asyncio.create_task(
        _pump_source(
            source,
            credential,
            container,
            object_name,
            relay_writer,
            settings.chunk_size,
        )
    )

    source_error: Optional[SourceFetchError] = None
    dest_error: Optional[DestinationCommitError] = None
    committed: bool = False
    try:
        try:
            await _compress_into(relay_reader, compressor, stream)
        except SourceFetchError:
            pass  # Reported by the pump task below.
        except DestinationCommitError as e:
            dest_error = e
            await relay_reader.close()

        try:
            await pump
        except SourceFetchError as e:
            source_error = e
        except RelayClosedError:
            pass

        if source_error is None and dest_error is None:
            try:
                await stream.close()
                committed = True
            except DestinationCommitError as e:
                dest_error = e
    finally:
        if not pump.done():
            await relay_reader.close()
            pump.cancel()
            await asyncio.gather(pump, return_exceptions=True)
        if not committed:
            await _abort_quietly(stream, f"{bucket}/{object_name}")

    # A source failure wins over any destination failure it caused.
    error: Optional[TransferError] = source_error or dest_error
    return TransferOutcome(
        container=container,
        object_name=object_name,
        error=error,
        bytes_read=compressor.bytes_in,
        bytes_written=stream.bytes_written,
    )


async def transfer_and_store(
    source: ObjectSource,
    credential: object,
    container: str,
    object_name: str,
    sink: ObjectSink,
    bucket: str,
    semaphore: asyncio.Semaphore,
    settings: TransferSettings = TransferSettings(),
) -> TransferOutcome:
    """
    Backs up one object once an admission slot is free.

    The slot is held for the whole transfer and released on every exit
    path, including cancellation. Failures are returned in the outcome,
    never raised; only cancellation propagates.

    Args:
        source (ObjectSource): The source store client.
        credential (object): The source credential.
        container (str): The source container.
        object_name (str): The object to transfer.
        sink (ObjectSink): The destination store.
        bucket (str): The destination bucket.
        semaphore (asyncio.Semaphore): The admission gate.
        settings (TransferSettings): Transfer tuning.

    Returns:
        TransferOutcome: Success, or exactly one recorded error.
    """
    async with semaphore:
        try:
            outcome: TransferOutcome = await _stream_object(
                source, credential, container, object_name, sink, bucket, settings
            )
        except Exception as e:
            logger.exception(
                f"An unexpected error occurred transferring '{container}/{object_name}'"
            )
            error: TransferError = TransferError(f"Unexpected error: {e}")
            error.__cause__ = e
            return TransferOutcome(container, object_name, error=error)

    if outcome.ok:
        logger.debug(
            f"Backed up '{container}/{object_name}' "
            f"({outcome.bytes_read} -> {outcome.bytes_written} bytes)."
        )
    else:
        logger.warning(
            f"Failed to back up '{container}/{object_name}': {outcome.error}"
        )
    return outcome
