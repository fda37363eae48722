"""GIF flavoured LZW compression.

Adapted from Jef Poskanzer's GIFEncoder (itself after the compress(1)
sources): open-addressing hash table of 5003 slots, variable width codes
packed LSB first, output framed into length-prefixed sub-blocks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from .byte_sink import ByteSink

logger = logging.getLogger(__name__)

BITS = 12  # code width ceiling
HSIZE = 5003  # 80% occupancy
BLOCK_SIZE = 254  # staged bytes before a sub-block is written


def max_code(n_bits: int) -> int:
    return (1 << n_bits) - 1


def _hash_shift() -> int:
    shift = 0
    fcode = HSIZE
    while fcode < 65536:
        fcode *= 2
        shift += 1
    return 8 - shift


HSHIFT = _hash_shift()


@dataclass
class _BitPacker:
    """Pending output bits plus the sub-block being staged.

    Attributes:
        init_bits: Code width right after a clear code.
        n_bits: Current code width.
        maxcode: Largest code representable at ``n_bits`` (4096 at the ceiling).
        accum: Bits not yet written, LSB first.
        bit_count: Number of valid bits in ``accum``.
        clear_pending: Set by a clear; the next emitted code resets the width.
        block: Staged sub-block bytes.
    """

    init_bits: int
    n_bits: int = 0
    maxcode: int = 0
    accum: int = 0
    bit_count: int = 0
    clear_pending: bool = False
    block: bytearray = field(default_factory=bytearray)

    def __post_init__(self) -> None:
        self.n_bits = self.init_bits
        self.maxcode = max_code(self.n_bits)

    def put(self, code: int, free_ent: int, outs: ByteSink) -> None:
        self.accum |= code << self.bit_count
        self.bit_count += self.n_bits

        while self.bit_count >= 8:
            self._char_out(self.accum & 0xFF, outs)
            self.accum >>= 8
            self.bit_count -= 8

        # grow the width once the next code no longer fits, or reset after a clear
        if free_ent > self.maxcode or self.clear_pending:
            if self.clear_pending:
                self.n_bits = self.init_bits
                self.maxcode = max_code(self.n_bits)
                self.clear_pending = False
            else:
                self.n_bits += 1
                self.maxcode = 1 << BITS if self.n_bits == BITS else max_code(self.n_bits)

    def flush(self, outs: ByteSink) -> None:
        while self.bit_count > 0:
            self._char_out(self.accum & 0xFF, outs)
            self.accum >>= 8
            self.bit_count -= 8
        self.accum = 0
        self.bit_count = 0
        self._flush_block(outs)

    def _char_out(self, byte: int, outs: ByteSink) -> None:
        self.block.append(byte)
        if len(self.block) >= BLOCK_SIZE:
            self._flush_block(outs)

    def _flush_block(self, outs: ByteSink) -> None:
        if self.block:
            outs.write_byte(len(self.block))
            outs.write_bytes(self.block)
            self.block = bytearray()


class LZWEncoder:
    """Compress one frame's palette indices into GIF image data.

    Attributes:
        pixels: Palette index per pixel, row-major.
        init_code_size: Minimum code size byte written ahead of the data.
    """

    def __init__(self, pixels: Sequence[int], color_depth: int):
        self.pixels = pixels
        self.init_code_size = max(2, color_depth)
        self.clear_code = 1 << self.init_code_size
        self.eof_code = self.clear_code + 1
        self._htab: List[int] = [-1] * HSIZE
        self._codetab: List[int] = [0] * HSIZE
        self._free_ent = self.clear_code + 2
        self.clear_count = 0

    def encode(self, outs: ByteSink) -> None:
        outs.write_byte(self.init_code_size)
        self._compress(self.init_code_size + 1, outs)
        outs.write_byte(0)  # block terminator

    def _clear_hash(self) -> None:
        self._htab = [-1] * HSIZE

    def _clear_block(self, packer: _BitPacker, outs: ByteSink) -> None:
        """Table is full: start over and tell the decoder to do the same."""
        self._clear_hash()
        self._free_ent = self.clear_code + 2
        packer.clear_pending = True
        self.clear_count += 1
        logger.debug("code table full, emitting clear code #%d", self.clear_count)
        packer.put(self.clear_code, self._free_ent, outs)

    def _compress(self, init_bits: int, outs: ByteSink) -> None:
        packer = _BitPacker(init_bits)
        self._free_ent = self.clear_code + 2
        self._clear_hash()
        htab = self._htab
        codetab = self._codetab

        packer.put(self.clear_code, self._free_ent, outs)

        pixels = iter(self.pixels)
        ent = next(pixels, None)
        if ent is None:
            # nothing to code, the stream is just clear + EOF
            packer.put(self.eof_code, self._free_ent, outs)
            packer.flush(outs)
            return
        ent &= 0xFF

        for c in pixels:
            c &= 0xFF
            fcode = (c << BITS) + ent
            i = (c << HSHIFT) ^ ent  # xor hashing

            if htab[i] == fcode:
                ent = codetab[i]
                continue
            if htab[i] >= 0:  # non-empty slot
                disp = HSIZE - i  # secondary hash (after G. Knott)
                if i == 0:
                    disp = 1
                found = False
                while True:
                    i -= disp
                    if i < 0:
                        i += HSIZE
                    if htab[i] == fcode:
                        found = True
                        break
                    if htab[i] < 0:
                        break
                if found:
                    ent = codetab[i]
                    continue

            packer.put(ent, self._free_ent, outs)
            ent = c
            if self._free_ent < 1 << BITS:
                codetab[i] = self._free_ent
                self._free_ent += 1
                htab[i] = fcode
            else:
                self._clear_block(packer, outs)
                htab = self._htab

        packer.put(ent, self._free_ent, outs)
        packer.put(self.eof_code, self._free_ent, outs)
        packer.flush(outs)
