from unittest.mock import MagicMock

import pytest

from qhyccd.cameras.qhy import prototypes
from qhyccd.cameras.qhy.backend import QHYCCD_READ_DIRECTLY, SdkBackend
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import (
    GetCameraTypeError,
    GetExposureRemainingError,
    GetImageSizeError,
    GetLiveFrameError,
    GetParameterError,
    InitSDKError,
    IsCfwPluggedInError,
    OpenCameraError,
    ScanQHYCCDError,
    SdkNotFoundError,
    SetParameterError,
)
from qhyccd.cameras.qhy.models import CCDChipArea, StreamMode
from qhyccd.cameras.qhy.prototypes import QHYCCD_ERROR, QHYCCD_PARAM_ERROR, QHYCCD_SUCCESS

HANDLE = 0x1234


@pytest.fixture
def so():
    return MagicMock()


@pytest.fixture
def backend(so):
    return SdkBackend(library=so)


def fill(*values):
    """A side_effect that stores values into the byref() arguments following the handle"""
    def side_effect(handle, *refs):
        for ref, value in zip(refs, values):
            ref._obj.value = value
        return QHYCCD_SUCCESS
    return side_effect


class TestCheck:

    def test_success(self):
        SdkBackend.check(QHYCCD_SUCCESS, InitSDKError, 'InitQHYCCDResource')

    def test_failure_carries_the_code(self):
        with pytest.raises(InitSDKError) as exc_info:
            SdkBackend.check(QHYCCD_ERROR, InitSDKError, 'InitQHYCCDResource')
        assert exc_info.value.error_code == QHYCCD_ERROR
        assert 'initializing QHYCCD SDK' in str(exc_info.value)

    def test_failure_carries_the_control(self):
        with pytest.raises(SetParameterError) as exc_info:
            SdkBackend.check(QHYCCD_ERROR, SetParameterError, 'SetQHYCCDParam', control=QHYControlId.CONTROL_GAIN)
        assert exc_info.value.control == QHYControlId.CONTROL_GAIN
        assert 'CONTROL_GAIN' in str(exc_info.value)


class TestSdkFunctions:

    def test_init_resource(self, backend, so):
        so.InitQHYCCDResource.return_value = QHYCCD_SUCCESS
        backend.init_resource()
        so.InitQHYCCDResource.assert_called_once()

        so.InitQHYCCDResource.return_value = QHYCCD_ERROR
        with pytest.raises(InitSDKError):
            backend.init_resource()

    def test_scan(self, backend, so):
        so.ScanQHYCCD.return_value = 2
        assert backend.scan() == 2

        so.ScanQHYCCD.return_value = QHYCCD_ERROR
        with pytest.raises(ScanQHYCCDError):
            backend.scan()

    def test_get_id(self, backend, so):
        def get_id(index, buf):
            buf.value = f'QHY178M-{index.value}'.encode()
            return QHYCCD_SUCCESS
        so.GetQHYCCDId.side_effect = get_id
        assert backend.get_id(3) == 'QHY178M-3'

    def test_sdk_version(self, backend, so):
        def version(*refs):
            for ref, value in zip(refs, (24, 12, 26, 0)):
                ref._obj.value = value
            return QHYCCD_SUCCESS
        so.GetQHYCCDSDKVersion.side_effect = version
        assert str(backend.get_sdk_version()) == '2024-12-26'


class TestCameraFunctions:

    def test_open(self, backend, so):
        so.OpenQHYCCD.return_value = HANDLE
        assert backend.open('QHY178M-1') == HANDLE
        so.OpenQHYCCD.assert_called_once_with(b'QHY178M-1')

    def test_open_failure(self, backend, so):
        so.OpenQHYCCD.return_value = None
        with pytest.raises(OpenCameraError):
            backend.open('QHY178M-1')

    def test_stream_mode(self, backend, so):
        so.SetQHYCCDStreamMode.return_value = QHYCCD_SUCCESS
        backend.set_stream_mode(HANDLE, StreamMode.Live)
        handle, mode = so.SetQHYCCDStreamMode.call_args.args
        assert handle == HANDLE
        assert mode.value == 1

    def test_chip_info(self, backend, so):
        so.GetQHYCCDChipInfo.side_effect = fill(7.4, 5.0, 3072, 2048, 2.4, 2.4, 16)
        info = backend.get_chip_info(HANDLE)
        assert info.image_width == 3072
        assert info.image_height == 2048
        assert info.pixel_width == pytest.approx(2.4)
        assert info.bits_per_pixel == 16

    def test_effective_area(self, backend, so):
        so.GetQHYCCDEffectiveArea.side_effect = fill(10, 20, 3000, 2000)
        assert backend.get_effective_area(HANDLE) == CCDChipArea(start_x=10, start_y=20, width=3000, height=2000)

    def test_readout_mode_name(self, backend, so):
        def name(handle, index, buf):
            buf.value = b'High Gain Mode 16BIT'
            return QHYCCD_SUCCESS
        so.GetQHYCCDReadModeName.side_effect = name
        assert backend.get_readout_mode_name(HANDLE, 1) == 'High Gain Mode 16BIT'

    def test_firmware_version_buffer(self, backend, so):
        def firmware(handle, buf):
            buf[0] = 0x81
            buf[1] = 9
            return QHYCCD_SUCCESS
        so.GetQHYCCDFWVersion.side_effect = firmware
        buf = backend.get_firmware_version(HANDLE)
        assert buf[:2] == bytes([0x81, 9])

    def test_single_frame_exposure_read_directly(self, backend, so):
        so.ExpQHYCCDSingleFrame.return_value = QHYCCD_READ_DIRECTLY
        backend.exp_single_frame(HANDLE)

    def test_get_single_frame(self, backend, so):
        def frame(handle, w, h, bpp, channels, buf):
            w._obj.value, h._obj.value, bpp._obj.value, channels._obj.value = 4, 2, 8, 1
            for i in range(8):
                buf[i] = i
            return QHYCCD_SUCCESS
        so.GetQHYCCDSingleFrame.side_effect = frame
        image = backend.get_single_frame(HANDLE, 16)
        assert (image.width, image.height, image.bits_per_pixel, image.channels) == (4, 2, 8, 1)
        assert len(image.data) == 16
        assert image.to_numpy().tolist() == [[0, 1, 2, 3], [4, 5, 6, 7]]

    def test_live_frame_not_ready(self, backend, so):
        so.GetQHYCCDLiveFrame.return_value = QHYCCD_ERROR
        with pytest.raises(GetLiveFrameError):
            backend.get_live_frame(HANDLE, 16)


class TestParameters:

    def test_control_available(self, backend, so):
        so.IsQHYCCDControlAvailable.return_value = QHYCCD_SUCCESS
        assert backend.is_control_available(HANDLE, QHYControlId.CONTROL_GAIN) == QHYCCD_SUCCESS

        so.IsQHYCCDControlAvailable.return_value = QHYCCD_ERROR
        assert backend.is_control_available(HANDLE, QHYControlId.CONTROL_GAIN) is None

    def test_get_param(self, backend, so):
        so.GetQHYCCDParam.return_value = 42.0
        assert backend.get_param(HANDLE, QHYControlId.CONTROL_GAIN) == 42.0
        so.GetQHYCCDParam.assert_called_with(HANDLE, int(QHYControlId.CONTROL_GAIN))

    def test_get_param_failure(self, backend, so):
        so.GetQHYCCDParam.return_value = QHYCCD_PARAM_ERROR
        with pytest.raises(GetParameterError) as exc_info:
            backend.get_param(HANDLE, QHYControlId.CONTROL_CURTEMP)
        assert exc_info.value.control == QHYControlId.CONTROL_CURTEMP

    def test_min_max_step(self, backend, so):
        so.GetQHYCCDParamMinMaxStep.side_effect = lambda handle, control, lo, hi, step: fill(0.0, 200.0, 1.0)(
            handle, lo, hi, step)
        assert backend.get_param_min_max_step(HANDLE, QHYControlId.CONTROL_GAIN) == (0.0, 200.0, 1.0)

    def test_set_param_failure(self, backend, so):
        so.SetQHYCCDParam.return_value = QHYCCD_ERROR
        with pytest.raises(SetParameterError):
            backend.set_param(HANDLE, QHYControlId.CONTROL_GAIN, 10)

    @pytest.mark.parametrize('ret, plugged', [(QHYCCD_SUCCESS, True), (QHYCCD_ERROR, False)])
    def test_cfw_plugged(self, backend, so, ret, plugged):
        so.IsQHYCCDCFWPlugged.return_value = ret
        assert backend.is_cfw_plugged(HANDLE) is plugged

    def test_cfw_plugged_unexpected(self, backend, so):
        so.IsQHYCCDCFWPlugged.return_value = 5
        with pytest.raises(IsCfwPluggedInError):
            backend.is_cfw_plugged(HANDLE)


class TestLoadLibrary:

    def test_not_found(self, monkeypatch):
        monkeypatch.setattr(prototypes.ctypes.util, 'find_library', lambda name: None)
        with pytest.raises(SdkNotFoundError):
            prototypes.load_library()

    def test_cannot_load(self):
        with pytest.raises(SdkNotFoundError):
            prototypes.load_library('/no/such/libqhyccd.so')

    def test_sets_prototypes(self):
        so = MagicMock()
        prototypes.set_ctypes_prototypes(so)
        assert so.OpenQHYCCD.restype is prototypes.qhyccd_handle_p
        assert so.GetQHYCCDParam.restype is prototypes.ctypes.c_double


class TestErrorSentinels:

    def test_mem_length(self, backend, so):
        so.GetQHYCCDMemLength.return_value = 3072 * 2048 * 2
        assert backend.get_mem_length(HANDLE) == 3072 * 2048 * 2

        so.GetQHYCCDMemLength.return_value = QHYCCD_ERROR
        with pytest.raises(GetImageSizeError):
            backend.get_mem_length(HANDLE)

    def test_camera_type(self, backend, so):
        so.GetQHYCCDType.return_value = 4010
        assert backend.get_type(HANDLE) == 4010

        so.GetQHYCCDType.return_value = QHYCCD_ERROR
        with pytest.raises(GetCameraTypeError):
            backend.get_type(HANDLE)

    def test_exposure_remaining(self, backend, so):
        so.GetQHYCCDExposureRemaining.return_value = 0
        assert backend.get_exposure_remaining(HANDLE) == 0

        so.GetQHYCCDExposureRemaining.return_value = QHYCCD_ERROR
        with pytest.raises(GetExposureRemainingError):
            backend.get_exposure_remaining(HANDLE)
