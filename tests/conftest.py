"""Shared fixtures.

The encoder is checked against a small independent GIF reader: a block
walker that validates sub-block framing and a plain LZW decoder that also
reports the width every code was read at.
"""

import struct
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import pytest


@dataclass
class Extension:
    label: int
    blocks: List[bytes]


@dataclass
class Image:
    left: int
    top: int
    width: int
    height: int
    flags: int
    local_table: Optional[bytes]
    min_code_size: int
    blocks: List[bytes]

    @property
    def data(self) -> bytes:
        return b"".join(self.blocks)


@dataclass
class ParsedGIF:
    width: int
    height: int
    flags: int
    global_table: Optional[bytes]
    records: list = field(default_factory=list)

    @property
    def images(self) -> List[Image]:
        return [r for r in self.records if isinstance(r, Image)]

    def extensions(self, label: int) -> List[Extension]:
        return [r for r in self.records if isinstance(r, Extension) and r.label == label]


def read_sub_blocks(data: bytes, pos: int) -> Tuple[List[bytes], int]:
    blocks = []
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return blocks, pos
        chunk = data[pos : pos + size]
        assert len(chunk) == size, f"sub-block at {pos - 1} declares {size} bytes, has {len(chunk)}"
        blocks.append(chunk)
        pos += size


def _parse(data: bytes) -> ParsedGIF:
    assert data[:6] == b"GIF89a"
    width, height, flags = struct.unpack_from("<HHB", data, 6)
    pos = 13
    table = None
    if flags & 0x80:
        size = 3 * (1 << ((flags & 0x07) + 1))
        table = data[pos : pos + size]
        pos += size
    gif = ParsedGIF(width, height, flags, table)

    while True:
        introducer = data[pos]
        pos += 1
        if introducer == 0x3B:
            break
        if introducer == 0x21:
            label = data[pos]
            blocks, pos = read_sub_blocks(data, pos + 1)
            gif.records.append(Extension(label, blocks))
        elif introducer == 0x2C:
            left, top, w, h, iflags = struct.unpack_from("<HHHHB", data, pos)
            pos += 9
            local = None
            if iflags & 0x80:
                size = 3 * (1 << ((iflags & 0x07) + 1))
                local = data[pos : pos + size]
                pos += size
            min_code_size = data[pos]
            blocks, pos = read_sub_blocks(data, pos + 1)
            gif.records.append(Image(left, top, w, h, iflags, local, min_code_size, blocks))
        else:
            raise AssertionError(f"unknown block introducer 0x{introducer:02x} at {pos - 1}")

    assert pos == len(data), "bytes after trailer"
    return gif


def _lzw_decode(min_code_size: int, data: bytes) -> Tuple[List[int], List[Tuple[int, int]]]:
    """Decode GIF LZW data; returns (indices, [(code, width), ...])."""
    clear = 1 << min_code_size
    eoi = clear + 1
    width = min_code_size + 1
    table: List[List[int]] = [[i] for i in range(clear)] + [[], []]
    prev: Optional[List[int]] = None
    out: List[int] = []
    codes: List[Tuple[int, int]] = []

    value = int.from_bytes(data, "little")
    total_bits = len(data) * 8
    pos = 0
    while pos + width <= total_bits:
        code = (value >> pos) & ((1 << width) - 1)
        pos += width
        codes.append((code, width))

        if code == clear:
            table = [[i] for i in range(clear)] + [[], []]
            width = min_code_size + 1
            prev = None
            continue
        if code == eoi:
            break
        if prev is None:
            entry = table[code]
        elif code < len(table):
            entry = table[code]
            if len(table) < 4096:
                table.append(prev + entry[:1])
        elif code == len(table):
            entry = prev + prev[:1]
            table.append(entry)
        else:
            raise AssertionError(f"code {code} out of range (table size {len(table)})")
        out.extend(entry)
        prev = entry
        if len(table) == (1 << width) and width < 12:
            width += 1

    return out, codes


@pytest.fixture
def parse_gif():
    return _parse


@pytest.fixture
def lzw_decode():
    return _lzw_decode


@pytest.fixture
def decode_frames(parse_gif, lzw_decode):
    """Decode every image of a GIF into its index list."""

    def decode(data: bytes) -> List[List[int]]:
        return [lzw_decode(image.min_code_size, image.data)[0] for image in parse_gif(data).images]

    return decode


@pytest.fixture
def solid_rgba():
    def make(width: int, height: int, color: Tuple[int, int, int, int]) -> bytes:
        return bytes(color) * (width * height)

    return make
