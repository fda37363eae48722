"""NeuQuant color reduction.

Kohonen self-organising map over RGB space (Anthony Dekker, 1994), the
quantizer gif.js ships. A network of 256 neurons is trained on a sample of
the frame's pixels and the trained neurons become the palette.

Palette lookups go through :class:`ColorMap`, which does an exact
squared-distance search and remembers which entries the frame has used.
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

logger = logging.getLogger(__name__)

NCYCLES = 100  # number of learning cycles
NETSIZE = 256  # number of colors used

NETBIASSHIFT = 4  # bias for color values
INTBIASSHIFT = 16  # bias for fractions
INTBIAS = 1 << INTBIASSHIFT
GAMMASHIFT = 10
BETASHIFT = 10
BETA = INTBIAS >> BETASHIFT  # beta = 1/1024
BETAGAMMA = INTBIAS << (GAMMASHIFT - BETASHIFT)

INITRAD = NETSIZE >> 3  # for 256 cols, radius starts at 32
RADIUSBIASSHIFT = 6
RADIUSBIAS = 1 << RADIUSBIASSHIFT
INITRADIUS = INITRAD * RADIUSBIAS
RADIUSDEC = 30  # factor of 1/30 each cycle

ALPHABIASSHIFT = 10
INITALPHA = 1 << ALPHABIASSHIFT
RADBIASSHIFT = 8
RADBIAS = 1 << RADBIASSHIFT
ALPHARADBSHIFT = ALPHABIASSHIFT + RADBIASSHIFT
ALPHARADBIAS = 1 << ALPHARADBSHIFT

# four primes near 500, assume no image has a length so large that it is
# divisible by all four
PRIME1 = 499
PRIME2 = 491
PRIME3 = 487
PRIME4 = 503
MINPICTUREBYTES = 3 * PRIME4


class NeuQuant:
    """Neural-net quantizer over a flat RGB byte buffer.

    Attributes:
        pixels: RGB triplets, three bytes per pixel.
        sample: Sampling factor; 1 learns from every pixel, 30 from every
            30th. Buffers under ``MINPICTUREBYTES`` always use 1.
    """

    def __init__(self, pixels: Sequence[int], sample: int = 10):
        self.pixels = pixels
        self.sample = max(1, int(sample))
        # each neuron is a biased [r, g, b]
        self._network: List[List[int]] = []
        self._bias = [0] * NETSIZE
        self._freq = [0] * NETSIZE
        self._radpower = [0] * INITRAD

    def build_colormap(self) -> None:
        self._init()
        self._learn()
        self._unbias()

    def get_colormap(self) -> bytearray:
        colormap = bytearray()
        for neuron in self._network:
            colormap.extend(min(255, max(0, c)) for c in neuron)
        return colormap

    def _init(self) -> None:
        self._network = []
        for i in range(NETSIZE):
            v = (i << (NETBIASSHIFT + 8)) // NETSIZE
            self._network.append([v, v, v])
            self._freq[i] = INTBIAS // NETSIZE
            self._bias[i] = 0

    def _unbias(self) -> None:
        for neuron in self._network:
            neuron[0] >>= NETBIASSHIFT
            neuron[1] >>= NETBIASSHIFT
            neuron[2] >>= NETBIASSHIFT

    def _altersingle(self, alpha: int, i: int, r: int, g: int, b: int) -> None:
        """Move neuron i towards biased (r, g, b) by factor alpha."""
        n = self._network[i]
        n[0] -= (alpha * (n[0] - r)) // INITALPHA
        n[1] -= (alpha * (n[1] - g)) // INITALPHA
        n[2] -= (alpha * (n[2] - b)) // INITALPHA

    def _alterneigh(self, radius: int, i: int, r: int, g: int, b: int) -> None:
        """Move neighbours of i (within radius) towards (r, g, b)."""
        lo = max(i - radius, -1)
        hi = min(i + radius, NETSIZE)

        j = i + 1
        k = i - 1
        m = 1
        while j < hi or k > lo:
            a = self._radpower[m]
            m += 1
            if j < hi:
                p = self._network[j]
                j += 1
                p[0] -= (a * (p[0] - r)) // ALPHARADBIAS
                p[1] -= (a * (p[1] - g)) // ALPHARADBIAS
                p[2] -= (a * (p[2] - b)) // ALPHARADBIAS
            if k > lo:
                p = self._network[k]
                k -= 1
                p[0] -= (a * (p[0] - r)) // ALPHARADBIAS
                p[1] -= (a * (p[1] - g)) // ALPHARADBIAS
                p[2] -= (a * (p[2] - b)) // ALPHARADBIAS

    def _contest(self, r: int, g: int, b: int) -> int:
        """Find the best neuron for (r, g, b), updating frequency and bias.

        Finds the closest neuron (min dist) and updates freq, then the best
        neuron (min dist-bias) is returned.
        """
        bestd = 1 << 31
        bestbiasd = bestd
        bestpos = -1
        bestbiaspos = bestpos

        for i, n in enumerate(self._network):
            dist = abs(n[0] - r) + abs(n[1] - g) + abs(n[2] - b)
            if dist < bestd:
                bestd = dist
                bestpos = i
            biasdist = dist - (self._bias[i] >> (INTBIASSHIFT - NETBIASSHIFT))
            if biasdist < bestbiasd:
                bestbiasd = biasdist
                bestbiaspos = i
            betafreq = self._freq[i] >> BETASHIFT
            self._freq[i] -= betafreq
            self._bias[i] += betafreq << GAMMASHIFT

        self._freq[bestpos] += BETA
        self._bias[bestpos] -= BETAGAMMA
        return bestbiaspos

    def _set_radpower(self, alpha: int, rad: int) -> None:
        for i in range(rad):
            self._radpower[i] = alpha * (((rad * rad - i * i) * RADBIAS) // (rad * rad))

    def _learn(self) -> None:
        pixels = self.pixels
        lengthcount = len(pixels)
        sample = 1 if lengthcount < MINPICTUREBYTES else self.sample

        alphadec = 30 + (sample - 1) // 3
        samplepixels = lengthcount // (3 * sample)
        delta = max(1, samplepixels // NCYCLES)
        alpha = INITALPHA
        radius = INITRADIUS

        rad = radius >> RADIUSBIASSHIFT
        if rad <= 1:
            rad = 0
        self._set_radpower(alpha, rad)

        if lengthcount < MINPICTUREBYTES:
            step = 3
        elif lengthcount % PRIME1 != 0:
            step = 3 * PRIME1
        elif lengthcount % PRIME2 != 0:
            step = 3 * PRIME2
        elif lengthcount % PRIME3 != 0:
            step = 3 * PRIME3
        else:
            step = 3 * PRIME4

        logger.debug("learning from %d of %d pixels (sample=%d)", samplepixels, lengthcount // 3, sample)

        pix = 0
        i = 0
        while i < samplepixels:
            r = (pixels[pix] & 0xFF) << NETBIASSHIFT
            g = (pixels[pix + 1] & 0xFF) << NETBIASSHIFT
            b = (pixels[pix + 2] & 0xFF) << NETBIASSHIFT

            j = self._contest(r, g, b)
            self._altersingle(alpha, j, r, g, b)
            if rad != 0:
                self._alterneigh(rad, j, r, g, b)

            pix += step
            if pix >= lengthcount:
                pix -= lengthcount

            i += 1
            if i % delta == 0:
                alpha -= alpha // alphadec
                radius -= radius // RADIUSDEC
                rad = radius >> RADIUSBIASSHIFT
                if rad <= 1:
                    rad = 0
                self._set_radpower(alpha, rad)


class ColorMap:
    """Palette plus nearest-color lookup.

    Attributes:
        palette: Flat RGB bytes, three per entry.
    """

    def __init__(self, palette: Sequence[int]):
        if len(palette) % 3 != 0:
            raise ValueError("palette length must be a multiple of 3")
        self.palette = bytes(palette)
        self._colors: List[Tuple[int, int, int]] = [
            (self.palette[i], self.palette[i + 1], self.palette[i + 2])
            for i in range(0, len(self.palette), 3)
        ]
        self._used: Set[int] = set()
        self._cache: Dict[Tuple[int, int, int], int] = {}

    @classmethod
    def build(cls, pixels: Sequence[int], sample: int = 10) -> "ColorMap":
        quantizer = NeuQuant(pixels, sample)
        quantizer.build_colormap()
        return cls(quantizer.get_colormap())

    def __len__(self) -> int:
        return len(self._colors)

    @property
    def used(self) -> FrozenSet[int]:
        return frozenset(self._used)

    @property
    def color_depth(self) -> int:
        """Bits per index: log2 of the table size the palette is written as."""
        depth = 1
        while (1 << depth) < len(self._colors):
            depth += 1
        return depth

    @property
    def palette_size_bits(self) -> int:
        return self.color_depth - 1

    def lookup_index(self, r: int, g: int, b: int) -> int:
        key = (r & 0xFF, g & 0xFF, b & 0xFF)
        index = self._cache.get(key)
        if index is None:
            index = self._nearest(key, range(len(self._colors)))
            self._cache[key] = index
        if index >= 0:
            self._used.add(index)
        return index

    def closest_to(self, color: int) -> int:
        """Nearest used entry to a ``0xRRGGBB`` color, -1 if nothing is used."""
        key = ((color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF)
        return self._nearest(key, sorted(self._used))

    def _nearest(self, color: Tuple[int, int, int], candidates: Sequence[int]) -> int:
        r, g, b = color
        best: Optional[int] = None
        best_dist = 0
        for index in candidates:
            pr, pg, pb = self._colors[index]
            dist = (r - pr) ** 2 + (g - pg) ** 2 + (b - pb) ** 2
            if best is None or dist < best_dist:
                best = index
                best_dist = dist
                if dist == 0:
                    break
        return -1 if best is None else best
