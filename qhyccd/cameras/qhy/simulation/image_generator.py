from enum import Enum

import numpy as np

MAX_8BIT = 255
MAX_16BIT = 65535

CHECKER_BLOCK_SIZE = 64     # pixels
RING_SPACING = 50           # pixels
STAR_DENSITY = 0.001        # stars per pixel


class ImagePattern(str, Enum):
    Gradient = 'gradient'
    StarField = 'starfield'
    Flat = 'flat'
    TestPattern = 'test-pattern'


class ImageGenerator:
    """
    Synthesizes the frames returned by simulated cameras.

    Samples are laid out the way the SDK delivers them: row major, channels interleaved,
     one byte per sample for 8-bit frames and two little-endian bytes for 16-bit frames.

    :param pattern: What to draw
    :param noise_level: Uniform noise amplitude as a fraction of full scale, clamped to [0, 1]
    :param base_level: The 16-bit background level (8-bit frames use its upper byte)
    :param rng: A numpy random Generator, mostly for reproducible tests
    """

    def __init__(self, pattern: ImagePattern | str = ImagePattern.Gradient, noise_level: float = 0.05,
                 base_level: int = 1000, rng: np.random.Generator | None = None):
        self.pattern = ImagePattern(pattern)
        self.noise_level = min(max(noise_level, 0.0), 1.0)
        self.base_level = base_level
        self.rng = rng if rng is not None else np.random.default_rng()

    def __repr__(self):
        return f"ImageGenerator(pattern={self.pattern.value}, noise_level={self.noise_level}, base_level={self.base_level})"

    def with_noise_level(self, level: float) -> 'ImageGenerator':
        self.noise_level = min(max(level, 0.0), 1.0)
        return self

    def with_base_level(self, level: int) -> 'ImageGenerator':
        self.base_level = level
        return self

    def generate_8bit(self, width: int, height: int, channels: int = 1) -> bytes:
        return self.generate(width, height, channels, bits_per_pixel=8)

    def generate_16bit(self, width: int, height: int, channels: int = 1) -> bytes:
        return self.generate(width, height, channels, bits_per_pixel=16)

    def generate(self, width: int, height: int, channels: int, bits_per_pixel: int) -> bytes:
        eight_bit = bits_per_pixel <= 8
        image = self.make_image(width, height, eight_bit)
        if channels > 1:
            image = np.repeat(image[:, :, np.newaxis], channels, axis=2)
        dtype = np.uint8 if eight_bit else np.dtype('<u2')
        return image.astype(dtype).tobytes()

    def make_image(self, width: int, height: int, eight_bit: bool) -> np.ndarray:
        """A single channel (height, width) image, already clipped to the sample range"""
        full_scale = MAX_8BIT if eight_bit else MAX_16BIT
        base = self.base_level >> 8 if eight_bit else self.base_level
        shape = (height, width)

        if self.pattern == ImagePattern.Gradient:
            span = 200 if eight_bit else 50000
            gradient = (np.arange(width) / width * span).astype(np.int64)
            image = base + gradient[np.newaxis, :] + self._noise(full_scale, 1.0, shape)

        elif self.pattern == ImagePattern.Flat:
            image = base + self._noise(full_scale, 1.0, shape)

        elif self.pattern == ImagePattern.StarField:
            image = base + self._noise(full_scale, 0.5 if eight_bit else 0.3, shape)
            image = np.clip(image, 0, full_scale)
            if eight_bit:
                self._add_stars(image, full_scale, margin=1, brightness=(150, 255))
            else:
                self._add_stars(image, full_scale, margin=2, brightness=(40000, 65535))

        else:
            y, x = np.mgrid[0:height, 0:width]
            light = ((x // CHECKER_BLOCK_SIZE + y // CHECKER_BLOCK_SIZE) % 2) == 0
            if eight_bit:
                levels, ring_mod = (200, 50), 20
            else:
                levels, ring_mod = (50000, 10000), 5000
            dist = np.sqrt((x - width // 2) ** 2 + (y - height // 2) ** 2)
            ring = (dist / RING_SPACING).astype(np.int64) % 2
            image = (np.where(light, levels[0], levels[1]) +
                     np.where(ring == 0, ring_mod, -ring_mod) +
                     self._noise(full_scale, 0.5, shape))

        return np.clip(image, 0, full_scale)

    def _noise(self, full_scale: int, factor: float, shape: tuple) -> np.ndarray:
        noise_range = int(full_scale * self.noise_level * factor)
        if noise_range <= 0:
            return np.zeros(shape, dtype=np.int64)
        return self.rng.integers(-noise_range, noise_range, size=shape, endpoint=True)

    def _add_stars(self, image: np.ndarray, full_scale: int, margin: int, brightness: tuple[int, int]):
        height, width = image.shape
        if width <= 2 * margin or height <= 2 * margin:
            return

        for _ in range(int(width * height * STAR_DENSITY)):
            cx = int(self.rng.integers(margin, width - margin))
            cy = int(self.rng.integers(margin, height - margin))
            peak = int(self.rng.integers(brightness[0], brightness[1]))
            size = int(self.rng.integers(1, 3, endpoint=True))

            dy, dx = np.mgrid[-size:size + 1, -size:size + 1]
            dist = np.sqrt(dx ** 2 + dy ** 2)
            falloff = np.where(dist <= size, 1.0 - dist / (size + 1), 0.0)
            xs, ys = cx + dx, cy + dy
            inside = (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height)
            image[ys[inside], xs[inside]] += (peak * falloff[inside]).astype(np.int64)

        # saturate, like the camera's ADC
        np.minimum(image, full_scale, out=image)
