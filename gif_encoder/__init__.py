"""Pure Python animated GIF89a encoder for RGBA frames."""

from .byte_sink import ByteSink
from .encoder import EncoderOptions, Frame, GIFEncoder, PixelSource, demo_build
from .errors import EncoderError, ErrorCode
from .lzw import LZWEncoder
from .neuquant import ColorMap, NeuQuant

__version__ = "0.1.0"

__all__ = [
    "ByteSink",
    "ColorMap",
    "EncoderError",
    "EncoderOptions",
    "ErrorCode",
    "Frame",
    "GIFEncoder",
    "LZWEncoder",
    "NeuQuant",
    "PixelSource",
    "demo_build",
]
