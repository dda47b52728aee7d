"""
Forward-only stream adapters that push data through a cipher method one
block at a time.

The wrapped source only has to provide ``read(n)``. Nothing beyond the
current block, one block of lookahead and whatever a caller asked read()
for is ever held in memory.
"""

import io

from .exceptions import CipherStateError


class CipherStream:
    def __init__(self, source, cipher_method):
        self._source = source
        self._cipher = cipher_method
        self._block_size = cipher_method.block_size
        self._generation = cipher_method.generation
        self._next = None
        self._source_done = False
        self._buffer = b""
        self.closed = False

    def _transform(self, data: bytes, final: bool) -> bytes:
        raise NotImplementedError

    def _pull(self) -> bytes:
        # Some sources return short reads before the end, keep going until
        # a full block is collected or the source is dry.
        chunk = self._source.read(self._block_size)
        if not chunk or len(chunk) == self._block_size:
            return chunk or b""
        parts = [chunk]
        size = len(chunk)
        while size < self._block_size:
            more = self._source.read(self._block_size - size)
            if not more:
                break
            parts.append(more)
            size += len(more)
        return b"".join(parts)

    def _peek(self):
        if self._next is None and not self._source_done:
            chunk = self._pull()
            if chunk:
                self._next = chunk
            else:
                self._source_done = True
        return self._next

    def _check_open(self):
        if self.closed:
            raise ValueError("I/O operation on closed stream.")

    def at_eof(self) -> bool:
        self._check_open()
        return not self._buffer and self._peek() is None

    def read_block(self) -> bytes:
        """Transform and return the next block, or b"" once the source is drained."""
        self._check_open()
        chunk = self._peek()
        if chunk is None:
            return b""

        if self._cipher.generation != self._generation:
            raise CipherStateError(
                f"{self._cipher.name} was reset while a {type(self).__name__} was still using it."
            )

        self._next = None
        final = self._peek() is None
        return self._transform(chunk, final)

    def read(self, size=-1) -> bytes:
        self._check_open()
        if size is None or size < 0:
            return self.readall()

        while len(self._buffer) < size and self._peek() is not None:
            self._buffer += self.read_block()

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def readall(self) -> bytes:
        parts = [self._buffer]
        self._buffer = b""
        while self._peek() is not None:
            parts.append(self.read_block())
        return b"".join(parts)

    def readable(self):
        return True

    def seekable(self):
        return False

    def writable(self):
        return False

    def seek(self, offset, whence=io.SEEK_SET):
        raise io.UnsupportedOperation(f"{type(self).__name__} is not seekable.")

    def close(self):
        if self.closed:
            return
        self.closed = True
        self._buffer = b""
        self._next = None
        close = getattr(self._source, "close", None)
        if close is not None:
            close()

    def __iter__(self):
        if self._buffer:
            data, self._buffer = self._buffer, b""
            yield data
        while not self.at_eof():
            block = self.read_block()
            if block:
                yield block

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close()


class EncryptingStream(CipherStream):
    """Reads plaintext from the source and yields ciphertext."""

    def _transform(self, data, final):
        return self._cipher.encrypt_block(data, final=final)


class DecryptingStream(CipherStream):
    """Reads ciphertext from the source and yields plaintext."""

    def _transform(self, data, final):
        return self._cipher.decrypt_block(data, final=final)


class EncodedTextSource:
    """
    Byte source over a text stream. Text is encoded as it is pulled and
    read(n) hands back exactly n bytes until the text runs out, so block
    boundaries stay aligned even when characters encode to several bytes.
    """

    def __init__(self, source, encoding="utf-8"):
        self._source = source
        self._encoding = encoding
        self._pending = b""

    def read(self, size=-1) -> bytes:
        if size is None or size < 0:
            data = self._pending + self._source.read().encode(self._encoding)
            self._pending = b""
            return data

        while len(self._pending) < size:
            text = self._source.read(size)
            if not text:
                break
            self._pending += text.encode(self._encoding)

        data, self._pending = self._pending[:size], self._pending[size:]
        return data

    def close(self):
        close = getattr(self._source, "close", None)
        if close is not None:
            close()
