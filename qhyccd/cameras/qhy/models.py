from enum import IntEnum
from pathlib import Path
from typing import Literal

import numpy as np
from pydantic import BaseModel


class StreamMode(IntEnum):
    SingleFrame = 0
    Live = 1


class BayerMode(IntEnum):
    GBRG = 1
    GRBG = 2
    BGGR = 3
    RGGB = 4


class CCDChipInfo(BaseModel):
    chip_width: float       # mm
    chip_height: float      # mm
    image_width: int        # pixels
    image_height: int       # pixels
    pixel_width: float      # um
    pixel_height: float     # um
    bits_per_pixel: int


class CCDChipArea(BaseModel):
    start_x: int = 0
    start_y: int = 0
    width: int
    height: int


class ReadoutMode(BaseModel):
    id: int
    name: str
    resolution: tuple[int, int] | None = None


class SDKVersion(BaseModel):
    year: int
    month: int
    day: int
    subday: int

    def __str__(self):
        return f"20{self.year}-{self.month:02}-{self.day:02}"


class ImageData(BaseModel):
    """
    A frame as returned by the SDK.  'data' is the whole transfer buffer, which may be
     longer than width * height * channels * bytes-per-sample.
    """
    data: bytes
    width: int
    height: int
    bits_per_pixel: int
    channels: int

    def __repr__(self):
        return (f"ImageData(width={self.width}, height={self.height}, bits_per_pixel={self.bits_per_pixel}, "
                f"channels={self.channels}, len(data)={len(self.data)})")

    @property
    def bytes_per_sample(self) -> int:
        return 1 if self.bits_per_pixel <= 8 else 2

    def to_numpy(self) -> np.ndarray:
        dtype = np.uint8 if self.bytes_per_sample == 1 else np.dtype('<u2')
        count = self.width * self.height * self.channels
        array = np.frombuffer(self.data, dtype=dtype, count=count)
        if self.channels == 1:
            return array.reshape((self.height, self.width))
        return array.reshape((self.height, self.width, self.channels))


class QHYRoiModel(BaseModel):
    x: int = 0
    y: int = 0
    xsize: int = 0
    ysize: int = 0

    def to_area(self) -> CCDChipArea:
        return CCDChipArea(start_x=self.x, start_y=self.y, width=self.xsize, height=self.ysize)


class QHYBinningModel(BaseModel):
    x: int = 1
    y: int = 1


class QHYCameraSettingsModel(BaseModel):
    readout_mode: int = 0
    binning: QHYBinningModel = QHYBinningModel(x=1, y=1)
    roi: QHYRoiModel | None = None          # None means 'the effective area'
    gain: float | None = None
    offset: float | None = None
    usb_traffic: float | None = None
    exposure_duration: float = 1.0          # in seconds
    depth: Literal[8, 16] = 16              # bits per pixel
    ddr: bool | None = None
    image_path: str | Path | None = None    # full path to save image

    @property
    def exposure_us(self) -> float:
        return self.exposure_duration * 1_000_000
