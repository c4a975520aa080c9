import logging
import os
import time
from pathlib import Path
from typing import Callable, List

import numpy as np
from astropy.io import fits
from PIL import Image

from qhyccd.cameras.qhy.camera import Camera, QHYActivities
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import GetLiveFrameError, SetStreamModeError
from qhyccd.cameras.qhy.models import ImageData, QHYCameraSettingsModel, StreamMode
from qhyccd.config.config import Config
from qhyccd.fits import ExposureTiming, make_header, write_fits
from qhyccd.utils import PathMaker, SingletonFactory, init_log

logger = logging.getLogger('qhyccd.acquisition')
init_log(logger)

FITS_SUFFIXES = ('.fits', '.fit', '.fts')


class FrameRateMeter:
    """Counts frames and reports the rate every 'interval' seconds"""

    def __init__(self, interval: float = 5.0):
        self.interval = interval
        self.frames = 0
        self.total_frames = 0
        self.started = time.monotonic()
        self.fps: float | None = None

    def tick(self, now: float | None = None) -> float | None:
        """
        Counts one frame.
        :return: The frame rate, if a reporting interval has just elapsed, otherwise None
        """
        if now is None:
            now = time.monotonic()
        self.frames += 1
        self.total_frames += 1
        elapsed = now - self.started
        if elapsed < self.interval:
            return None

        self.fps = self.frames / elapsed
        logger.info(f"{self.fps:.2f} fps ({self.total_frames} frames so far)")
        self.frames = 0
        self.started = now
        return self.fps


def require_control(camera: Camera, control: QHYControlId):
    if camera.is_control_available(control) is None:
        err = SetStreamModeError(control=control)
        logger.error(f"{camera.id}: {err} ({control.name} not supported)")
        raise err


def _describe_chip(camera: Camera):
    chip = camera.get_ccd_info()
    overscan = camera.get_overscan_area()
    effective = camera.get_effective_area()
    logger.info(f"{camera.id}: chip {chip.chip_width}x{chip.chip_height} mm, "
                f"{chip.image_width}x{chip.image_height} pixels of {chip.pixel_width}x{chip.pixel_height} um, "
                f"{chip.bits_per_pixel} bpp")
    logger.info(f"{camera.id}: overscan area {overscan.model_dump()}, effective area {effective.model_dump()}")
    return effective


def single_frame(camera: Camera, settings: QHYCameraSettingsModel, timing: ExposureTiming | None = None) -> ImageData:
    """
    Takes one exposure in single frame mode.  The camera is closed afterwards, unless it was
     already open.
    :param camera: The camera
    :param settings: Readout mode, binning, roi, gain, offset, depth, exposure, etc.
    :param timing: Gets filled with the exposure's start, mid and end times
    """
    opened_here = not camera.is_open
    camera.open()
    try:
        require_control(camera, QHYControlId.CAM_SINGLEFRAMEMODE)
        camera.set_stream_mode(StreamMode.SingleFrame)
        camera.set_readout_mode(settings.readout_mode)
        camera.init()
        effective = _describe_chip(camera)
        camera.apply_settings(settings, roi=effective)

        if timing is None:
            timing = ExposureTiming()
        timing.begin()
        camera.start_single_frame_exposure()
        size = camera.get_image_size()
        image = camera.get_single_frame(size)
        timing.finish()
        logger.info(f"{camera.id}: got {image!r}")
        return image
    finally:
        if opened_here:
            camera.close()


def live_frames(camera: Camera, settings: QHYCameraSettingsModel, frames: int | None = None,
                callback: Callable[[ImageData], None] | None = None,
                max_attempts: int | None = None, retry_delay: float | None = None) -> List[ImageData]:
    """
    Streams frames in live mode, always 8 bits per pixel.
    A frame that is not yet ready is retried after 'retry_delay' seconds, giving up after
     'max_attempts' fetches altogether.  Defaults come from the '[live]' configuration.
    :param callback: Called with each frame as it arrives
    :return: The frames that arrived, possibly fewer than requested
    """
    conf = Config().get_live()
    frames = conf.frames if frames is None else frames
    max_attempts = conf.max_attempts if max_attempts is None else max_attempts
    retry_delay = conf.retry_delay if retry_delay is None else retry_delay

    opened_here = not camera.is_open
    camera.open()
    try:
        require_control(camera, QHYControlId.CAM_LIVEVIDEOMODE)
        camera.set_readout_mode(settings.readout_mode)
        camera.set_stream_mode(StreamMode.Live)
        camera.init()
        effective = _describe_chip(camera)
        live_settings = settings.model_copy(update={
            'depth': 8,
            'ddr': True if settings.ddr is None else settings.ddr,
        })
        camera.apply_settings(live_settings, roi=effective)

        images = []
        camera.begin_live()
        try:
            size = camera.get_image_size()
            meter = FrameRateMeter(conf.fps_interval)
            attempts = 0
            while len(images) < frames and attempts < max_attempts:
                attempts += 1
                try:
                    image = camera.get_live_frame(size)
                except GetLiveFrameError:
                    time.sleep(retry_delay)
                    continue
                images.append(image)
                meter.tick()
                if callback is not None:
                    callback(image)
        finally:
            camera.end_live()

        if len(images) < frames:
            logger.warning(f"{camera.id}: got only {len(images)} of {frames} live frames in {max_attempts} attempts")
        return images
    finally:
        if opened_here:
            camera.close()


def save_image(image: ImageData, path: str | Path, header: fits.Header | None = None) -> str:
    """
    Saves a frame, as FITS when the suffix is .fits/.fit/.fts, otherwise in whatever format
     Pillow infers from the suffix.  16 bit frames are scaled to 8 bits for formats that lack
     16 bit support (everything but PNG and TIFF, and color images).
    """
    path = str(path)
    data = image.to_numpy()
    suffix = os.path.splitext(path)[1].lower()

    if suffix in FITS_SUFFIXES:
        write_fits(path, data, header)
        logger.info(f"saved '{path}'")
        return path

    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    if data.dtype != np.uint8 and (data.ndim == 3 or suffix not in ('.png', '.tif', '.tiff')):
        data = (data >> 8).astype(np.uint8)
    Image.fromarray(data).save(path)
    logger.info(f"saved '{path}'")
    return path


def expose_and_save(camera: Camera, settings: QHYCameraSettingsModel) -> str:
    """
    Takes a single frame and saves it, by default as a FITS file in the daily 'Exposures' folder.
    :return: The image's path
    """
    timing = ExposureTiming()
    image = single_frame(camera, settings, timing)

    if settings.image_path is not None:
        path = str(settings.image_path)
    else:
        path = SingletonFactory.get_instance(PathMaker).make_exposure_file_name(camera.id) + '.fits'

    camera.start_activity(QHYActivities.Saving)
    try:
        header = make_header(camera, settings, image, timing)
        save_image(image, path, header)
    finally:
        camera.end_activity(QHYActivities.Saving)
    return path
