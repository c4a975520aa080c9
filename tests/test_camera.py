from unittest.mock import MagicMock

import pytest
from conftest import small_camera_config

from qhyccd.cameras.qhy.camera import Camera, QHYActivities
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import CameraNotOpenError, SetParameterError
from qhyccd.cameras.qhy.models import QHYBinningModel, QHYCameraSettingsModel, QHYRoiModel, StreamMode


class TestLifecycle:

    def test_calls_need_an_open_camera(self, camera):
        assert not camera.is_open
        with pytest.raises(CameraNotOpenError):
            camera.get_ccd_info()
        with pytest.raises(CameraNotOpenError):
            camera.get_model()

    def test_open_and_close_are_idempotent(self, camera, state):
        camera.open()
        handle = camera.handle
        camera.open()
        assert camera.handle is handle
        assert state.is_open

        camera.close()
        camera.close()
        assert not camera.is_open
        assert not state.is_open

    def test_close_clears_activities(self, camera):
        camera.open()
        camera.start_single_frame_exposure()
        assert camera.is_active(QHYActivities.Exposing)
        camera.close()
        assert camera.is_idle()

    def test_status(self, camera):
        assert camera.status()['open'] is False
        camera.open()
        status = camera.status()
        assert status['open'] is True
        assert status['simulated'] is True
        assert status['operational'] is True
        assert 'model' in status


class TestInfo:

    @pytest.fixture
    def opened(self, camera):
        camera.open()
        yield camera
        camera.close()

    def test_model(self, opened):
        assert opened.get_model() == 'QHY-TEST'
        assert opened.model == 'QHY-TEST'

    def test_firmware_version(self, opened):
        assert opened.get_firmware_version() == 'Firmware version: 2024_1_1'

    @pytest.mark.parametrize('year, expected', [(2015, '2015_6_9'), (2019, '2019_6_9')])
    def test_firmware_version_years(self, sim_config, opened, year, expected):
        sim_config.with_firmware_version(year, 6, 9)
        assert opened.get_firmware_version() == f'Firmware version: {expected}'

    def test_chip_info(self, opened):
        info = opened.get_ccd_info()
        assert (info.image_width, info.image_height) == (64, 48)
        assert opened.chip_info == info

    def test_areas(self, opened):
        assert opened.get_effective_area().width == 64
        assert opened.get_overscan_area().height == 48

    def test_readout_modes(self, opened):
        modes = opened.get_readout_modes()
        assert [m.name for m in modes] == ['Standard', 'Binned']
        assert modes[1].resolution == (32, 24)

        opened.set_readout_mode(1)
        assert opened.get_readout_mode() == 1


class TestSettings:

    @pytest.fixture
    def initialized(self, camera):
        camera.open()
        camera.set_stream_mode(StreamMode.SingleFrame)
        camera.init()
        yield camera
        camera.close()

    def test_apply_settings(self, initialized, state):
        settings = QHYCameraSettingsModel(gain=20, offset=30, usb_traffic=10, exposure_duration=0.5, depth=8)
        initialized.apply_settings(settings)

        assert state.bit_depth == 8
        assert state.parameters[QHYControlId.CONTROL_GAIN] == 20
        assert state.parameters[QHYControlId.CONTROL_OFFSET] == 30
        assert state.parameters[QHYControlId.CONTROL_USBTRAFFIC] == 10
        assert state.parameters[QHYControlId.CONTROL_TRANSFERBIT] == 8
        assert state.parameters[QHYControlId.CONTROL_EXPOSURE] == 500_000
        assert initialized.latest_settings == settings
        assert not initialized.is_active(QHYActivities.SettingParameters)

    def test_bit_depth_without_transfer_bit(self, sdk):
        config = small_camera_config(camera_id='SIM-NO-TRANSFERBIT')
        del config.supported_controls[QHYControlId.CONTROL_TRANSFERBIT]
        camera = sdk.add_simulated_camera(config)
        camera.open()
        try:
            camera.init()
            camera.apply_settings(QHYCameraSettingsModel(depth=8))
            state = sdk.backend.states['SIM-NO-TRANSFERBIT']
            assert state.bit_depth == 8
            assert QHYControlId.CONTROL_TRANSFERBIT not in state.parameters
            assert camera.get_image_size() == 64 * 48
        finally:
            camera.close()

    def test_roi_from_settings(self, initialized):
        settings = QHYCameraSettingsModel(roi=QHYRoiModel(x=8, y=8, xsize=32, ysize=24))
        initialized.apply_settings(settings)
        assert initialized.get_image_size() == 32 * 24 * 2

    def test_binning(self, initialized):
        initialized.apply_settings(QHYCameraSettingsModel(binning=QHYBinningModel(x=2, y=2), depth=8))
        assert initialized.get_image_size() == 32 * 24

    def test_unavailable_optional_control_is_skipped(self, initialized, state):
        # the simulated camera has no DDR
        initialized.apply_settings(QHYCameraSettingsModel(ddr=True))
        assert QHYControlId.CONTROL_DDR not in state.parameters

    def test_set_if_available(self, initialized, state):
        initialized.set_if_available(QHYControlId.CONTROL_GAIN, 33)
        assert initialized.get_parameter(QHYControlId.CONTROL_GAIN) == 33

        with pytest.raises(SetParameterError):
            initialized.set_if_available(QHYControlId.CONTROL_WBR, 1)

    def test_min_max_step(self, initialized):
        assert initialized.get_parameter_min_max_step(QHYControlId.CONTROL_GAIN) == (0.0, 100.0, 1.0)


class TestExposure:

    @pytest.fixture
    def mocked(self):
        backend = MagicMock()
        backend.simulated = False
        backend.open.return_value = 'handle'
        camera = Camera('QHY-MOCK', backend)
        camera.open()
        return camera

    @pytest.mark.parametrize('reported, expected', [(0, 0), (50, 0), (100, 0), (101, 101), (5000, 5000)])
    def test_remaining_exposure_threshold(self, mocked, reported, expected):
        mocked.backend.get_exposure_remaining.return_value = reported
        assert mocked.get_remaining_exposure_us() == expected

    def test_calls_get_the_handle(self, mocked):
        mocked.set_bin_mode(2, 2)
        mocked.backend.set_bin_mode.assert_called_once_with('handle', 2, 2)

    def test_abort_while_exposing(self, mocked):
        mocked.start_single_frame_exposure()
        mocked.abort()
        mocked.backend.cancel_exposing_and_readout.assert_called_once_with('handle')
        assert not mocked.is_active(QHYActivities.Exposing)

    def test_abort_while_live(self, mocked):
        mocked.begin_live()
        mocked.abort()
        mocked.backend.end_live.assert_called_once_with('handle')
        assert mocked.is_idle()

    def test_settings_order(self, mocked):
        mocked.backend.reset_mock()
        mocked.apply_settings(QHYCameraSettingsModel(gain=5, offset=6, usb_traffic=7, depth=8))
        calls = [name for name, _, _ in mocked.backend.method_calls if name != 'is_control_available']
        assert calls == ['set_param', 'set_param', 'set_param', 'set_param',
                         'get_effective_area', 'set_roi', 'set_bin_mode', 'set_bit_mode', 'set_param']
        set_params = [c.args[1] for c in mocked.backend.set_param.call_args_list]
        assert set_params == [QHYControlId.CONTROL_USBTRAFFIC, QHYControlId.CONTROL_GAIN,
                              QHYControlId.CONTROL_OFFSET, QHYControlId.CONTROL_EXPOSURE,
                              QHYControlId.CONTROL_TRANSFERBIT]

    def test_shutdown_closes(self, mocked):
        mocked.shutdown()
        mocked.backend.close.assert_called_once_with('handle')
        assert not mocked.is_open

    def test_single_frame(self, camera):
        camera.open()
        try:
            camera.set_stream_mode(StreamMode.SingleFrame)
            camera.init()
            camera.apply_settings(QHYCameraSettingsModel(exposure_duration=0.01))
            camera.start_single_frame_exposure()
            assert camera.is_active(QHYActivities.Exposing)
            image = camera.get_single_frame(camera.get_image_size())
            assert camera.is_idle()
            assert (image.width, image.height, image.bits_per_pixel) == (64, 48, 16)
        finally:
            camera.close()
