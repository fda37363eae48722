"""Append-only byte buffer the encoder writes GIF records into."""

from __future__ import annotations

from typing import Optional, Sequence, Union

BytesLike = Union[bytes, bytearray, memoryview, Sequence[int]]


class ByteSink:
    """Growable output buffer.

    Notes:
        - Every write masks its value to 8 bits.
        - ``finalize`` returns an immutable copy; the sink keeps its contents.
    """

    def __init__(self) -> None:
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def write_byte(self, value: int) -> None:
        self._data.append(value & 0xFF)

    def write_bytes(self, buf: BytesLike, offset: int = 0, length: Optional[int] = None) -> None:
        end = len(buf) if length is None else offset + length
        chunk = buf[offset:end]
        if isinstance(chunk, (bytes, bytearray, memoryview)):
            self._data.extend(chunk)
        else:
            self._data.extend(v & 0xFF for v in chunk)

    def write_short_le(self, value: int) -> None:
        self._data.append(value & 0xFF)
        self._data.append((value >> 8) & 0xFF)

    def write_utf_bytes(self, text: str) -> None:
        self._data.extend(text.encode("utf-8"))

    def finalize(self) -> bytes:
        return bytes(self._data)
