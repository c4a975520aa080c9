import os
from unittest.mock import MagicMock

import numpy as np
import pytest
from astropy.io import fits
from conftest import TEST_TOP_FOLDER, small_camera_config
from PIL import Image

from qhyccd.acquisition import FrameRateMeter, expose_and_save, live_frames, save_image, single_frame
from qhyccd.cameras.qhy.camera import QHYActivities
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import GetLiveFrameError, SetStreamModeError
from qhyccd.cameras.qhy.models import ImageData, QHYBinningModel, QHYCameraSettingsModel, StreamMode
from qhyccd.fits import ExposureTiming, make_header


@pytest.fixture
def settings():
    return QHYCameraSettingsModel(gain=10, offset=20, exposure_duration=0.01)


def make_image(width=8, height=4, bits=16, channels=1) -> ImageData:
    dtype = np.uint8 if bits == 8 else np.dtype('<u2')
    array = np.arange(width * height * channels, dtype=dtype)
    return ImageData(data=array.tobytes(), width=width, height=height, bits_per_pixel=bits, channels=channels)


class TestSingleFrame:

    def test_takes_a_frame(self, camera, state, settings):
        image = single_frame(camera, settings)
        assert (image.width, image.height, image.bits_per_pixel, image.channels) == (64, 48, 16, 1)
        assert state.stream_mode == StreamMode.SingleFrame
        assert state.parameters[QHYControlId.CONTROL_GAIN] == 10
        assert not camera.is_open
        assert camera.is_idle()

    def test_leaves_an_open_camera_open(self, camera, settings):
        camera.open()
        single_frame(camera, settings)
        assert camera.is_open

    def test_fills_the_timing(self, camera, settings):
        timing = ExposureTiming()
        single_frame(camera, settings, timing)
        assert timing.start <= timing.mid <= timing.end
        assert timing.duration.total_seconds() >= 0.01
        assert timing.mid_utc.utcoffset().total_seconds() == 0

    def test_readout_mode(self, camera, settings):
        image = single_frame(camera, settings.model_copy(update={'readout_mode': 1}))
        assert (image.width, image.height) == (32, 24)

    def test_binning(self, camera, settings):
        image = single_frame(camera, settings.model_copy(update={'binning': QHYBinningModel(x=2, y=2)}))
        assert (image.width, image.height) == (32, 24)

    def test_needs_single_frame_mode(self, sdk, settings):
        config = small_camera_config(camera_id='SIM-LIVE-ONLY')
        del config.supported_controls[QHYControlId.CAM_SINGLEFRAMEMODE]
        camera = sdk.add_simulated_camera(config)
        with pytest.raises(SetStreamModeError):
            single_frame(camera, settings)
        assert not camera.is_open


class TestLiveFrames:

    def test_takes_eight_bit_frames(self, camera, state, settings):
        received = []
        images = live_frames(camera, settings, frames=3, callback=received.append)
        assert len(images) == 3
        assert received == images
        assert all(image.bits_per_pixel == 8 for image in images)
        assert state.stream_mode == StreamMode.Live
        assert not state.live_mode_active
        assert not camera.is_open

    def test_eight_bit_frames_without_transfer_bit(self, sdk, settings):
        config = small_camera_config(camera_id='SIM-NO-TRANSFERBIT')
        del config.supported_controls[QHYControlId.CONTROL_TRANSFERBIT]
        camera = sdk.add_simulated_camera(config)
        images = live_frames(camera, settings, frames=1)
        assert [image.bits_per_pixel for image in images] == [8]
        assert sdk.backend.states['SIM-NO-TRANSFERBIT'].bit_depth == 8

    def test_frames_default_from_configuration(self, camera, settings):
        assert len(live_frames(camera, settings)) == 3

    def test_needs_live_mode(self, sdk, settings):
        config = small_camera_config(camera_id='SIM-SINGLE-ONLY')
        del config.supported_controls[QHYControlId.CAM_LIVEVIDEOMODE]
        camera = sdk.add_simulated_camera(config)
        with pytest.raises(SetStreamModeError):
            live_frames(camera, settings, frames=1)

    def test_retries_frames_that_are_not_ready(self, camera, settings):
        image = make_image()
        camera.get_live_frame = MagicMock(side_effect=[GetLiveFrameError(), GetLiveFrameError(), image])
        images = live_frames(camera, settings, frames=1, retry_delay=0)
        assert images == [image]
        assert camera.get_live_frame.call_count == 3

    def test_gives_up_after_max_attempts(self, camera, settings):
        camera.get_live_frame = MagicMock(side_effect=GetLiveFrameError())
        images = live_frames(camera, settings, frames=2, max_attempts=4, retry_delay=0)
        assert images == []
        assert camera.get_live_frame.call_count == 4
        assert not camera.is_active(QHYActivities.Live)


class TestFrameRateMeter:

    def test_reports_once_per_interval(self):
        meter = FrameRateMeter(interval=1.0)
        meter.started = 100.0
        assert meter.tick(now=100.4) is None
        assert meter.tick(now=100.8) is None
        assert meter.tick(now=101.5) == pytest.approx(2.0)
        assert meter.frames == 0
        assert meter.total_frames == 3
        assert meter.tick(now=102.0) is None


class TestSaveImage:

    def test_fits(self, tmp_path):
        path = save_image(make_image(), tmp_path / 'a' / 'frame.fits')
        with fits.open(path) as hdul:
            assert hdul[0].data.shape == (4, 8)
            assert hdul[0].data[1, 0] == 8

    def test_fits_color_is_a_cube(self, tmp_path):
        path = save_image(make_image(bits=8, channels=3), tmp_path / 'frame.fits')
        with fits.open(path) as hdul:
            assert hdul[0].data.shape == (3, 4, 8)

    def test_png_keeps_sixteen_bits(self, tmp_path):
        path = save_image(make_image(), tmp_path / 'frame.png')
        with Image.open(path) as img:
            assert img.size == (8, 4)
            assert img.mode.startswith('I')

    def test_jpeg_is_eight_bit(self, tmp_path):
        path = save_image(make_image(), tmp_path / 'frame.jpg')
        with Image.open(path) as img:
            assert img.mode == 'L'

    def test_color_png(self, tmp_path):
        path = save_image(make_image(bits=8, channels=3), tmp_path / 'frame.png')
        with Image.open(path) as img:
            assert img.mode == 'RGB'


class TestExposeAndSave:

    def test_header(self, camera, settings, tmp_path):
        path = expose_and_save(camera, settings.model_copy(update={'image_path': str(tmp_path / 'x.fits')}))
        assert path == str(tmp_path / 'x.fits')
        with fits.open(path) as hdul:
            header = hdul[0].header
            assert header['CAMERA'] == 'SIM-TEST'
            assert header['DETECTOR'] == 'QHY-TEST'
            assert header['EXPTIME'] == 0.01
            assert header['GAIN'] == 10
            assert header['XBINNING'] == 1
            assert header['DATE-OBS'] == header['T_MID']
            assert header['MJD-OBS'] > 60000
            assert hdul[0].data.shape == (48, 64)
        assert not camera.is_active(QHYActivities.Saving)

    def test_default_path(self, camera, settings):
        path = expose_and_save(camera, settings)
        assert path.startswith(TEST_TOP_FOLDER)
        assert os.path.basename(os.path.dirname(path)) == 'Exposures'
        assert path.endswith('.fits')
        assert os.path.exists(path)


class TestMakeHeader:

    def test_extra_keys(self, camera, settings):
        timing = ExposureTiming()
        timing.begin()
        timing.finish()
        camera.open()
        camera.get_ccd_info()
        header = make_header(camera, settings, make_image(), timing, extra={'FILTER': 'Ha'})
        assert header['FILTER'] == 'Ha'
        assert header.comments['FILTER'] == 'FILTER WHEEL POSITION NAME'
        assert header['XPIXSZ'] == 10.0
        assert 'OFFSET' in header
