"""Animated GIF writer for RGBA frames.

This module keeps the core idea of gif.js (build GIF animations from frames
rendered on a canvas): each frame arrives as raw RGBA bytes, the first frame
trains the palette every later frame reuses, and the structural GIF89a
records are written around the LZW image data.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence, Union

from .byte_sink import BytesLike, ByteSink
from .errors import EncoderError, ErrorCode
from .lzw import LZWEncoder
from .neuquant import ColorMap

logger = logging.getLogger(__name__)

PALETTE_BYTES = 3 * 256
MAX_REPEAT = 20


class PixelSource(Protocol):
    """Anything that can hand out a rectangle of RGBA pixels (a canvas, a surface)."""

    def get_image_data(self, x: int, y: int, width: int, height: int) -> BytesLike:
        ...


@dataclass(frozen=True)
class Frame:
    """Single RGBA frame split into color and alpha planes.

    Attributes:
        width: Frame width in pixels.
        height: Frame height in pixels.
        rgb: Flat RGB triplets (len == width * height * 3).
        alpha: One alpha byte per pixel (len == width * height).
    """

    width: int
    height: int
    rgb: bytes
    alpha: bytes

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("width and height must be >= 0")
        if len(self.rgb) != self.width * self.height * 3:
            raise ValueError("rgb length must be width * height * 3")
        if len(self.alpha) != self.width * self.height:
            raise ValueError("alpha length must be width * height")

    @classmethod
    def from_rgba(cls, width: int, height: int, rgba: BytesLike) -> "Frame":
        expected = width * height * 4
        if len(rgba) != expected:
            raise ValueError(f"expected {expected} RGBA bytes for {width}x{height}, got {len(rgba)}")
        data = bytes(rgba)
        rgb = bytearray(width * height * 3)
        rgb[0::3] = data[0::4]
        rgb[1::3] = data[1::4]
        rgb[2::3] = data[2::4]
        return cls(width, height, bytes(rgb), data[3::4])

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    def indexed(self, color_map: ColorMap) -> bytearray:
        """Map every pixel to its nearest palette index."""
        rgb = self.rgb
        lookup = color_map.lookup_index
        pixels = bytearray(self.pixel_count)
        k = 0
        for j in range(self.pixel_count):
            pixels[j] = lookup(rgb[k], rgb[k + 1], rgb[k + 2])
            k += 3
        return pixels


@dataclass(frozen=True)
class EncoderOptions:
    """Frame-independent settings, frozen once encoding starts.

    Attributes:
        delay: Delay between frames in centiseconds.
        repeat: -1 plays once, 0 loops forever, n loops n times.
        dispose: Disposal method, or -1 to pick 0/2 from transparency.
        quality: NeuQuant sampling factor; 1 is best, higher is faster.
        transparent: ``0xRRGGBB`` color standing in for transparent pixels.
    """

    delay: int = 3
    repeat: int = 0
    dispose: int = -1
    quality: int = 10
    transparent: Optional[int] = None

    @property
    def disposal(self) -> int:
        if self.dispose >= 0:
            return self.dispose & 7
        return 0 if self.transparent is None else 2


class GIFEncoder:
    """Streaming GIF89a writer.

    Notes:
        - Call ``start`` first, then ``add_frame`` per frame, then ``finish``.
        - The palette is built from the first frame and reused by every frame.
        - Frames after the first repeat the palette as a local color table.
    """

    def __init__(self, width: int, height: int):
        if width < 0 or height < 0:
            raise ValueError("width and height must be >= 0")
        if width > 0xFFFF or height > 0xFFFF:
            raise ValueError("width and height must fit in 16 bits")

        self.width = width
        self.height = height
        self.out = ByteSink()
        self._options = EncoderOptions()
        self._source: Optional[PixelSource] = None
        self._color_map: Optional[ColorMap] = None
        self._started = False
        self._finished = False
        self._frame_count = 0

    @property
    def options(self) -> EncoderOptions:
        return self._options

    @property
    def color_map(self) -> Optional[ColorMap]:
        return self._color_map

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def _configure(self, operation: str, **changes: Union[int, None]) -> "GIFEncoder":
        if self._started:
            raise EncoderError(f"cannot call {operation}() after start(): options are frozen", ErrorCode.OPTIONS_FROZEN)
        self._options = dataclasses.replace(self._options, **changes)
        return self

    @staticmethod
    def _check_delay(delay: int, requested: str) -> int:
        if delay < 0 or delay > 0xFFFF:
            raise ValueError(f"delay out of range: {requested} is {delay} cs, GIF allows 0..65535")
        return delay

    def set_delay(self, milliseconds: float) -> "GIFEncoder":
        delay = self._check_delay(int(round(milliseconds / 10)), f"{milliseconds} ms")
        return self._configure("set_delay", delay=delay)

    def set_frame_rate(self, fps: float) -> "GIFEncoder":
        if fps <= 0:
            raise ValueError("fps must be > 0")
        delay = self._check_delay(int(round(100 / fps)), f"{fps} fps")
        return self._configure("set_frame_rate", delay=delay)

    def set_dispose(self, code: int) -> "GIFEncoder":
        """Disposal method written for every frame.

        0 no disposal specified, 1 leave in place, 2 restore to background,
        3 restore to previous. Negative values keep the default (0, or 2 when
        a transparent color is set).
        """
        if code < 0:
            return self._configure("set_dispose")
        return self._configure("set_dispose", dispose=code)

    def set_repeat(self, value: int) -> "GIFEncoder":
        """-1 plays once, 0 loops forever, n loops n times (at most 20)."""
        if value < 0:
            value = -1
        elif value > MAX_REPEAT:
            value = MAX_REPEAT
        return self._configure("set_repeat", repeat=value)

    def set_quality(self, quality: int) -> "GIFEncoder":
        return self._configure("set_quality", quality=max(1, int(quality)))

    def set_transparent(self, color: Optional[int]) -> "GIFEncoder":
        if color is not None and not 0 <= color <= 0xFFFFFF:
            raise ValueError(f"transparent color must be 0xRRGGBB, got {color!r}")
        return self._configure("set_transparent", transparent=color)

    def attach(self, source: PixelSource) -> "GIFEncoder":
        """Read frames from ``source`` when ``add_frame`` gets no pixels."""
        self._source = source
        return self

    def start(self) -> "GIFEncoder":
        if self._started:
            raise EncoderError("start() was already called", ErrorCode.ALREADY_STARTED)
        self.out.write_utf_bytes("GIF89a")
        self._started = True
        logger.debug("started %dx%d GIF with %s", self.width, self.height, self._options)
        return self

    def add_frame(self, rgba: Optional[BytesLike] = None) -> None:
        if not self._started:
            raise EncoderError("cannot add_frame() before start()", ErrorCode.NOT_STARTED)
        if self._finished:
            raise EncoderError("cannot add_frame() after finish()", ErrorCode.FINISHED)
        if rgba is None:
            if self._source is None:
                raise EncoderError("add_frame() got no pixels and no source is attached", ErrorCode.NO_IMAGE_DATA)
            rgba = self._source.get_image_data(0, 0, self.width, self.height)

        frame = Frame.from_rgba(self.width, self.height, rgba)
        first_frame = self._color_map is None
        if self._color_map is None:
            self._color_map = ColorMap.build(frame.rgb, self._options.quality)
            logger.debug("built %d color palette from first frame", len(self._color_map))
        color_map = self._color_map

        pixels = frame.indexed(color_map)
        transparent_index = None
        if self._options.transparent is not None:
            # nearest among the entries frames have used so far
            transparent_index = max(0, color_map.closest_to(self._options.transparent))
            for j, a in enumerate(frame.alpha):
                if a == 0:
                    pixels[j] = transparent_index

        if first_frame:
            self._write_lsd(color_map)
            self._write_palette(color_map)
            if self._options.repeat >= 0:
                self._write_netscape_ext()

        self._write_graphic_ctrl_ext(transparent_index)
        self._write_image_desc(color_map, first_frame)
        if not first_frame:
            self._write_palette(color_map)
        LZWEncoder(pixels, color_map.color_depth).encode(self.out)

        self._frame_count += 1
        logger.debug("encoded frame %d (%d bytes so far)", self._frame_count, len(self.out))

    def finish(self) -> bytes:
        if not self._started:
            raise EncoderError("cannot finish() before start()", ErrorCode.NOT_STARTED)
        if self._finished:
            raise EncoderError("finish() was already called", ErrorCode.FINISHED)
        self.out.write_byte(0x3B)  # GIF trailer
        self._finished = True
        logger.debug("finished GIF: %d frames, %d bytes", self._frame_count, len(self.out))
        return self.out.finalize()

    def save(self, output_path: Union[str, Path]) -> Path:
        out = Path(output_path)
        out.write_bytes(self.finish())
        return out

    def _write_lsd(self, color_map: ColorMap) -> None:
        self.out.write_short_le(self.width)
        self.out.write_short_le(self.height)
        # GCT present, 8-bit color resolution, unsorted, table size
        self.out.write_byte(0x80 | 0x70 | color_map.palette_size_bits)
        self.out.write_byte(0)  # background color index
        self.out.write_byte(0)  # pixel aspect ratio

    def _write_palette(self, color_map: ColorMap) -> None:
        self.out.write_bytes(color_map.palette)
        for _ in range(PALETTE_BYTES - len(color_map.palette)):
            self.out.write_byte(0)

    def _write_netscape_ext(self) -> None:
        self.out.write_byte(0x21)
        self.out.write_byte(0xFF)
        self.out.write_byte(11)
        self.out.write_utf_bytes("NETSCAPE2.0")
        self.out.write_byte(3)
        self.out.write_byte(1)
        self.out.write_short_le(self._options.repeat)
        self.out.write_byte(0)

    def _write_graphic_ctrl_ext(self, transparent_index: Optional[int]) -> None:
        self.out.write_byte(0x21)
        self.out.write_byte(0xF9)
        self.out.write_byte(4)
        transparent_flag = 0 if transparent_index is None else 1
        self.out.write_byte((self._options.disposal << 2) | transparent_flag)
        self.out.write_short_le(self._options.delay)
        self.out.write_byte(transparent_index or 0)
        self.out.write_byte(0)

    def _write_image_desc(self, color_map: ColorMap, first_frame: bool) -> None:
        self.out.write_byte(0x2C)
        self.out.write_short_le(0)
        self.out.write_short_le(0)
        self.out.write_short_le(self.width)
        self.out.write_short_le(self.height)
        if first_frame:
            self.out.write_byte(0)
        else:
            self.out.write_byte(0x80 | color_map.palette_size_bits)


def demo_build(output: Union[str, Path] = "demo.gif") -> Path:
    """Render a small RGBA animation and save it as a looping GIF."""
    width, height = 64, 64
    colors: Sequence[tuple[int, int, int]] = [(255, 0, 0), (0, 255, 0), (0, 0, 255)]
    gif = GIFEncoder(width, height).set_delay(70).set_repeat(0).set_transparent(0x000000)
    gif.start()

    for frame_i in range(12):
        rgba = bytearray()
        for y in range(height):
            for x in range(width):
                if (x - frame_i * 3) % 16 < 8:
                    rgba.extend((*colors[frame_i % 3], 255))
                elif (x + y) % 2 == 0:
                    rgba.extend((255, 255, 255, 255))
                else:
                    rgba.extend((0, 0, 0, 0))
        gif.add_frame(rgba)

    return gif.save(output)
