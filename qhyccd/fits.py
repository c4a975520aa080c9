import datetime
import os

import numpy as np
from astropy import time as atime
from astropy.io import fits

from qhyccd.cameras.qhy.camera import Camera
from qhyccd.cameras.qhy.models import ImageData, QHYCameraSettingsModel

FITS_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"

# standard header key/value pairs
FITS_STANDARD_FIELDS = {
    'INSTRUME':     'QHYCCD',
    'ORIGIN':       'qhyccd',
}

FITS_HEADER_COMMENTS = {
    'INSTRUME':     'INSTRUMENT NAME',
    'ORIGIN':       'SOFTWARE THAT CREATED THE FILE',
    'CAMERA':       'CAMERA ID',
    'DETECTOR':     'CAMERA MODEL',
    'TYPE':         'EXPOSURE TYPE',
    'LT_START':     'EXPOSURE START TIME [local]',
    'LT_MID':       'EXPOSURE MID TIME [local]',
    'LT_END':       'EXPOSURE END TIME [local]',
    'T_START':      'EXPOSURE START TIME [UTC]',
    'T_MID':        'EXPOSURE MID TIME [UTC]',
    'T_END':        'EXPOSURE END TIME [UTC]',
    'EXPTIME':      'REQUESTED EXPOSURE TIME [sec]',
    'T_EXP':        'ELAPSED EXPOSURE AND READOUT TIME [sec]',
    'DATE-OBS':     'OBSERVATION DATE',
    'MJD-OBS':      'MJD OF OBSERVATION MIDPOINT',
    'READMODE':     'CAMERA READOUT MODE',
    'GAIN':         'CAMERA GAIN',
    'OFFSET':       'CAMERA OFFSET',
    'XBINNING':     'BINNING IN THE X DIRECTION',
    'YBINNING':     'BINNING IN THE Y DIRECTION',
    'DEPTH':        'BITS PER PIXEL AS TRANSFERRED',
    'CHANNELS':     'NUMBER OF COLOR CHANNELS',
    'XPIXSZ':       'PIXEL WIDTH IN MICRONS',
    'YPIXSZ':       'PIXEL HEIGHT IN MICRONS',
    'FILTER':       'FILTER WHEEL POSITION NAME',
    'CCD-TEMP':     'SENSOR TEMPERATURE [C]',
}


class ExposureTiming:
    start: datetime.datetime
    start_utc: datetime.datetime

    mid: datetime.datetime
    mid_utc: datetime.datetime

    end: datetime.datetime
    end_utc: datetime.datetime

    duration: datetime.timedelta

    def begin(self):
        self.start = datetime.datetime.now()
        self.start_utc = self.start.astimezone(datetime.timezone.utc)

    def finish(self):
        self.end = datetime.datetime.now()
        self.end_utc = self.end.astimezone(datetime.timezone.utc)
        self.duration = self.end - self.start
        self.mid = self.start + self.duration / 2
        self.mid_utc = self.mid.astimezone(datetime.timezone.utc)


def make_header(camera: Camera, settings: QHYCameraSettingsModel, image: ImageData, timing: ExposureTiming,
                extra: dict | None = None) -> fits.Header:
    """
    Builds the FITS header of an exposure.
    :param camera: The camera that took it
    :param settings: The settings it was taken with
    :param image: The image
    :param timing: When it was taken
    :param extra: More key/value pairs (e.g. 'FILTER', 'CCD-TEMP'), keys must appear in FITS_HEADER_COMMENTS
    """
    hdr = {}
    for key in FITS_STANDARD_FIELDS.keys():
        hdr[key] = FITS_STANDARD_FIELDS[key]
    hdr['CAMERA'] = camera.id
    hdr['DETECTOR'] = camera.model or ''
    hdr['TYPE'] = 'RAW'

    hdr['LT_START'] = timing.start.strftime(FITS_DATE_FORMAT)
    hdr['LT_MID'] = timing.mid.strftime(FITS_DATE_FORMAT)
    hdr['LT_END'] = timing.end.strftime(FITS_DATE_FORMAT)

    hdr['T_START'] = timing.start_utc.strftime(FITS_DATE_FORMAT)
    hdr['T_MID'] = timing.mid_utc.strftime(FITS_DATE_FORMAT)
    hdr['T_END'] = timing.end_utc.strftime(FITS_DATE_FORMAT)

    hdr['EXPTIME'] = settings.exposure_duration
    hdr['T_EXP'] = timing.duration.total_seconds()
    hdr['DATE-OBS'] = hdr['T_MID']
    hdr['MJD-OBS'] = atime.Time(timing.mid_utc).mjd
    hdr['READMODE'] = settings.readout_mode
    if settings.gain is not None:
        hdr['GAIN'] = settings.gain
    if settings.offset is not None:
        hdr['OFFSET'] = settings.offset
    hdr['XBINNING'] = settings.binning.x
    hdr['YBINNING'] = settings.binning.y
    hdr['DEPTH'] = image.bits_per_pixel
    hdr['CHANNELS'] = image.channels
    if camera.chip_info is not None:
        hdr['XPIXSZ'] = camera.chip_info.pixel_width * settings.binning.x
        hdr['YPIXSZ'] = camera.chip_info.pixel_height * settings.binning.y
    if extra:
        hdr.update(extra)

    header = fits.Header()
    for key in hdr.keys():
        header[key] = (hdr[key], FITS_HEADER_COMMENTS[key])
    return header


def write_fits(path: str, data: np.ndarray, header: fits.Header | None = None):
    """Color images (height, width, channels) are stored as (channels, height, width) cubes"""
    if data.ndim == 3:
        data = np.moveaxis(data, -1, 0)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    hdu = fits.PrimaryHDU(data, header=header)
    hdul = fits.HDUList([hdu])
    hdul.writeto(path, overwrite=True)
