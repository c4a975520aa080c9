import ctypes
import logging
from abc import ABC, abstractmethod
from ctypes import byref, c_double, c_uint8, c_uint32, create_string_buffer
from typing import Any

from qhyccd.utils import init_log

from .controls import QHYControlId
from .errors import (
    AbortExposureAndReadoutError,
    BeginLiveError,
    CloseCameraError,
    CloseSDKError,
    EndLiveError,
    GetCameraIdError,
    GetCameraModelError,
    GetCameraTypeError,
    GetCCDInfoError,
    GetEffectiveAreaError,
    GetExposureRemainingError,
    GetFirmwareVersionError,
    GetImageSizeError,
    GetLiveFrameError,
    GetMinMaxStepError,
    GetNumberOfReadoutModesError,
    GetOverscanAreaError,
    GetParameterError,
    GetReadoutModeError,
    GetReadoutModeNameError,
    GetReadoutModeResolutionError,
    GetSDKVersionError,
    GetSingleFrameError,
    InitCameraError,
    InitSDKError,
    IsCfwPluggedInError,
    OpenCameraError,
    QHYError,
    ScanQHYCCDError,
    SetBinModeError,
    SetBitModeError,
    SetDebayerError,
    SetParameterError,
    SetReadoutModeError,
    SetRoiError,
    SetStreamModeError,
    StartSingleFrameExposureError,
    StopExposureError,
)
from .models import CCDChipArea, CCDChipInfo, ImageData, SDKVersion, StreamMode
from .prototypes import QHYCCD_ERROR, QHYCCD_PARAM_ERROR, QHYCCD_SUCCESS, STR_BUFFER_SIZE, load_library

logger = logging.getLogger('qhyccd.sdk')
init_log(logger)

# ExpQHYCCDSingleFrame returns this (instead of QHYCCD_SUCCESS) for cameras that need no readout wait
QHYCCD_READ_DIRECTLY = 0x2001

Handle = Any


class QHYBackend(ABC):
    """
    The SDK operations the Camera, FilterWheel and Sdk objects are built on.
    Implementations raise the matching QHYError when an operation fails.
    """

    simulated: bool = False

    @abstractmethod
    def init_resource(self) -> None:
        pass

    @abstractmethod
    def release_resource(self) -> None:
        pass

    @abstractmethod
    def scan(self) -> int:
        pass

    @abstractmethod
    def get_id(self, index: int) -> str:
        pass

    @abstractmethod
    def get_sdk_version(self) -> SDKVersion:
        pass

    @abstractmethod
    def open(self, camera_id: str) -> Handle:
        pass

    @abstractmethod
    def close(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def init(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def set_stream_mode(self, handle: Handle, mode: StreamMode) -> None:
        pass

    @abstractmethod
    def set_readout_mode(self, handle: Handle, mode: int) -> None:
        pass

    @abstractmethod
    def get_model(self, camera_id: str) -> str:
        pass

    @abstractmethod
    def get_firmware_version(self, handle: Handle) -> bytes:
        """The raw firmware version buffer, decoded by Camera.get_firmware_version()"""
        pass

    @abstractmethod
    def get_type(self, handle: Handle) -> int:
        pass

    @abstractmethod
    def get_chip_info(self, handle: Handle) -> CCDChipInfo:
        pass

    @abstractmethod
    def get_overscan_area(self, handle: Handle) -> CCDChipArea:
        pass

    @abstractmethod
    def get_effective_area(self, handle: Handle) -> CCDChipArea:
        pass

    @abstractmethod
    def get_number_of_readout_modes(self, handle: Handle) -> int:
        pass

    @abstractmethod
    def get_readout_mode_name(self, handle: Handle, index: int) -> str:
        pass

    @abstractmethod
    def get_readout_mode_resolution(self, handle: Handle, index: int) -> tuple[int, int]:
        pass

    @abstractmethod
    def get_readout_mode(self, handle: Handle) -> int:
        pass

    @abstractmethod
    def set_bin_mode(self, handle: Handle, bin_x: int, bin_y: int) -> None:
        pass

    @abstractmethod
    def set_debayer(self, handle: Handle, on: bool) -> None:
        pass

    @abstractmethod
    def set_roi(self, handle: Handle, roi: CCDChipArea) -> None:
        pass

    @abstractmethod
    def set_bit_mode(self, handle: Handle, bits: int) -> None:
        pass

    @abstractmethod
    def begin_live(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def end_live(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def get_mem_length(self, handle: Handle) -> int:
        pass

    @abstractmethod
    def get_live_frame(self, handle: Handle, buffer_size: int) -> ImageData:
        pass

    @abstractmethod
    def get_single_frame(self, handle: Handle, buffer_size: int) -> ImageData:
        pass

    @abstractmethod
    def exp_single_frame(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def get_exposure_remaining(self, handle: Handle) -> int:
        pass

    @abstractmethod
    def cancel_exposing(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def cancel_exposing_and_readout(self, handle: Handle) -> None:
        pass

    @abstractmethod
    def is_control_available(self, handle: Handle, control: QHYControlId) -> int | None:
        pass

    @abstractmethod
    def get_param(self, handle: Handle, control: QHYControlId) -> float:
        pass

    @abstractmethod
    def get_param_min_max_step(self, handle: Handle, control: QHYControlId) -> tuple[float, float, float]:
        pass

    @abstractmethod
    def set_param(self, handle: Handle, control: QHYControlId, value: float) -> None:
        pass

    @abstractmethod
    def is_cfw_plugged(self, handle: Handle) -> bool:
        pass


class SdkBackend(QHYBackend):
    """
    The real thing: calls into the vendor's libqhyccd through ctypes.

    :param library: An already loaded (and prototyped) library, mostly for testing.
     When None, the library is loaded with load_library()
    """

    def __init__(self, library=None):
        self.so = library if library is not None else load_library()

    @staticmethod
    def check(ret: int, error: type[QHYError], func_name: str, level: int = logging.ERROR, **kwargs):
        if ret != QHYCCD_SUCCESS:
            err = error(error_code=ret, **kwargs)
            logger.log(level, f"SDK function '{func_name}' failed: {err}")
            raise err
        logger.debug(f"SDK function '{func_name}' returned {ret}")

    def init_resource(self) -> None:
        self.check(self.so.InitQHYCCDResource(), InitSDKError, 'InitQHYCCDResource')

    def release_resource(self) -> None:
        self.check(self.so.ReleaseQHYCCDResource(), CloseSDKError, 'ReleaseQHYCCDResource')

    def scan(self) -> int:
        num = self.so.ScanQHYCCD()
        if num == QHYCCD_ERROR:
            err = ScanQHYCCDError()
            logger.error(f"SDK function 'ScanQHYCCD' failed: {err}")
            raise err
        return num

    def get_id(self, index: int) -> str:
        buf = create_string_buffer(STR_BUFFER_SIZE)
        self.check(self.so.GetQHYCCDId(c_uint32(index), buf), GetCameraIdError, f'GetQHYCCDId({index})')
        return buf.value.decode('utf-8')

    def get_sdk_version(self) -> SDKVersion:
        year, month, day, subday = c_uint32(), c_uint32(), c_uint32(), c_uint32()
        self.check(self.so.GetQHYCCDSDKVersion(byref(year), byref(month), byref(day), byref(subday)),
                   GetSDKVersionError, 'GetQHYCCDSDKVersion')
        return SDKVersion(year=year.value, month=month.value, day=day.value, subday=subday.value)

    def open(self, camera_id: str) -> Handle:
        handle = self.so.OpenQHYCCD(camera_id.encode('utf-8'))
        if not handle:
            err = OpenCameraError()
            logger.error(f"SDK function 'OpenQHYCCD({camera_id})' failed: {err}")
            raise err
        return handle

    def close(self, handle: Handle) -> None:
        self.check(self.so.CloseQHYCCD(handle), CloseCameraError, 'CloseQHYCCD')

    def init(self, handle: Handle) -> None:
        self.check(self.so.InitQHYCCD(handle), InitCameraError, 'InitQHYCCD')

    def set_stream_mode(self, handle: Handle, mode: StreamMode) -> None:
        self.check(self.so.SetQHYCCDStreamMode(handle, c_uint8(mode)), SetStreamModeError,
                   f'SetQHYCCDStreamMode({mode.name})')

    def set_readout_mode(self, handle: Handle, mode: int) -> None:
        self.check(self.so.SetQHYCCDReadMode(handle, c_uint32(mode)), SetReadoutModeError,
                   f'SetQHYCCDReadMode({mode})')

    def get_model(self, camera_id: str) -> str:
        buf = create_string_buffer(STR_BUFFER_SIZE)
        self.check(self.so.GetQHYCCDModel(camera_id.encode('utf-8'), buf), GetCameraModelError, 'GetQHYCCDModel')
        return buf.value.decode('utf-8')

    def get_firmware_version(self, handle: Handle) -> bytes:
        buf = (c_uint8 * STR_BUFFER_SIZE)()
        self.check(self.so.GetQHYCCDFWVersion(handle, buf), GetFirmwareVersionError, 'GetQHYCCDFWVersion')
        return bytes(buf)

    def get_type(self, handle: Handle) -> int:
        camera_type = self.so.GetQHYCCDType(handle)
        if camera_type == QHYCCD_ERROR:
            err = GetCameraTypeError()
            logger.error(f"SDK function 'GetQHYCCDType' failed: {err}")
            raise err
        return camera_type

    def get_chip_info(self, handle: Handle) -> CCDChipInfo:
        chip_width, chip_height = c_double(), c_double()
        image_width, image_height = c_uint32(), c_uint32()
        pixel_width, pixel_height = c_double(), c_double()
        bpp = c_uint32()
        self.check(self.so.GetQHYCCDChipInfo(handle,
                                             byref(chip_width), byref(chip_height),
                                             byref(image_width), byref(image_height),
                                             byref(pixel_width), byref(pixel_height),
                                             byref(bpp)),
                   GetCCDInfoError, 'GetQHYCCDChipInfo')
        return CCDChipInfo(
            chip_width=chip_width.value,
            chip_height=chip_height.value,
            image_width=image_width.value,
            image_height=image_height.value,
            pixel_width=pixel_width.value,
            pixel_height=pixel_height.value,
            bits_per_pixel=bpp.value,
        )

    def _get_area(self, func_name: str, handle: Handle, error: type[QHYError]) -> CCDChipArea:
        start_x, start_y, width, height = c_uint32(), c_uint32(), c_uint32(), c_uint32()
        func = getattr(self.so, func_name)
        self.check(func(handle, byref(start_x), byref(start_y), byref(width), byref(height)),
                   error, func_name)
        return CCDChipArea(start_x=start_x.value, start_y=start_y.value, width=width.value, height=height.value)

    def get_overscan_area(self, handle: Handle) -> CCDChipArea:
        return self._get_area('GetQHYCCDOverScanArea', handle, GetOverscanAreaError)

    def get_effective_area(self, handle: Handle) -> CCDChipArea:
        return self._get_area('GetQHYCCDEffectiveArea', handle, GetEffectiveAreaError)

    def get_number_of_readout_modes(self, handle: Handle) -> int:
        num = c_uint32()
        self.check(self.so.GetQHYCCDNumberOfReadModes(handle, byref(num)), GetNumberOfReadoutModesError,
                   'GetQHYCCDNumberOfReadModes')
        return num.value

    def get_readout_mode_name(self, handle: Handle, index: int) -> str:
        buf = create_string_buffer(STR_BUFFER_SIZE * 4)
        self.check(self.so.GetQHYCCDReadModeName(handle, c_uint32(index), buf), GetReadoutModeNameError,
                   f'GetQHYCCDReadModeName({index})')
        return buf.value.decode('utf-8')

    def get_readout_mode_resolution(self, handle: Handle, index: int) -> tuple[int, int]:
        width, height = c_uint32(), c_uint32()
        self.check(self.so.GetQHYCCDReadModeResolution(handle, c_uint32(index), byref(width), byref(height)),
                   GetReadoutModeResolutionError, f'GetQHYCCDReadModeResolution({index})')
        return width.value, height.value

    def get_readout_mode(self, handle: Handle) -> int:
        mode = c_uint32()
        self.check(self.so.GetQHYCCDReadMode(handle, byref(mode)), GetReadoutModeError, 'GetQHYCCDReadMode')
        return mode.value

    def set_bin_mode(self, handle: Handle, bin_x: int, bin_y: int) -> None:
        self.check(self.so.SetQHYCCDBinMode(handle, c_uint32(bin_x), c_uint32(bin_y)), SetBinModeError,
                   f'SetQHYCCDBinMode({bin_x}, {bin_y})')

    def set_debayer(self, handle: Handle, on: bool) -> None:
        self.check(self.so.SetQHYCCDDebayerOnOff(handle, on), SetDebayerError, f'SetQHYCCDDebayerOnOff({on})')

    def set_roi(self, handle: Handle, roi: CCDChipArea) -> None:
        self.check(self.so.SetQHYCCDResolution(handle,
                                               c_uint32(roi.start_x), c_uint32(roi.start_y),
                                               c_uint32(roi.width), c_uint32(roi.height)),
                   SetRoiError, f'SetQHYCCDResolution({roi.start_x}, {roi.start_y}, {roi.width}, {roi.height})')

    def set_bit_mode(self, handle: Handle, bits: int) -> None:
        self.check(self.so.SetQHYCCDBitsMode(handle, c_uint32(bits)), SetBitModeError, f'SetQHYCCDBitsMode({bits})')

    def begin_live(self, handle: Handle) -> None:
        self.check(self.so.BeginQHYCCDLive(handle), BeginLiveError, 'BeginQHYCCDLive')

    def end_live(self, handle: Handle) -> None:
        self.check(self.so.StopQHYCCDLive(handle), EndLiveError, 'StopQHYCCDLive')

    def get_mem_length(self, handle: Handle) -> int:
        length = self.so.GetQHYCCDMemLength(handle)
        if length == QHYCCD_ERROR:
            err = GetImageSizeError()
            logger.error(f"SDK function 'GetQHYCCDMemLength' failed: {err}")
            raise err
        return length

    def _get_frame(self, func_name: str, handle: Handle, buffer_size: int, error: type[QHYError],
                   level: int = logging.ERROR) -> ImageData:
        width, height, bpp, channels = c_uint32(), c_uint32(), c_uint32(), c_uint32()
        image_buffer = (c_uint8 * buffer_size)()
        ret = getattr(self.so, func_name)(handle, byref(width), byref(height), byref(bpp), byref(channels),
                                           image_buffer)
        self.check(ret, error, func_name, level=level)
        return ImageData(
            data=bytes(image_buffer),
            width=width.value,
            height=height.value,
            bits_per_pixel=bpp.value,
            channels=channels.value,
        )

    def get_live_frame(self, handle: Handle, buffer_size: int) -> ImageData:
        # no new frame yet is routine in live mode
        return self._get_frame('GetQHYCCDLiveFrame', handle, buffer_size, GetLiveFrameError, level=logging.DEBUG)

    def get_single_frame(self, handle: Handle, buffer_size: int) -> ImageData:
        return self._get_frame('GetQHYCCDSingleFrame', handle, buffer_size, GetSingleFrameError)

    def exp_single_frame(self, handle: Handle) -> None:
        ret = self.so.ExpQHYCCDSingleFrame(handle)
        if ret == QHYCCD_READ_DIRECTLY:
            ret = QHYCCD_SUCCESS
        self.check(ret, StartSingleFrameExposureError, 'ExpQHYCCDSingleFrame')

    def get_exposure_remaining(self, handle: Handle) -> int:
        remaining = self.so.GetQHYCCDExposureRemaining(handle)
        if remaining == QHYCCD_ERROR:
            err = GetExposureRemainingError()
            logger.error(f"SDK function 'GetQHYCCDExposureRemaining' failed: {err}")
            raise err
        return remaining

    def cancel_exposing(self, handle: Handle) -> None:
        self.check(self.so.CancelQHYCCDExposing(handle), StopExposureError, 'CancelQHYCCDExposing')

    def cancel_exposing_and_readout(self, handle: Handle) -> None:
        self.check(self.so.CancelQHYCCDExposingAndReadout(handle), AbortExposureAndReadoutError,
                   'CancelQHYCCDExposingAndReadout')

    def is_control_available(self, handle: Handle, control: QHYControlId) -> int | None:
        ret = self.so.IsQHYCCDControlAvailable(handle, int(control))
        if ret == QHYCCD_ERROR:
            return None
        return ret

    def get_param(self, handle: Handle, control: QHYControlId) -> float:
        value = self.so.GetQHYCCDParam(handle, int(control))
        if value == QHYCCD_PARAM_ERROR:
            err = GetParameterError(control=control)
            logger.error(f"SDK function 'GetQHYCCDParam({control.name})' failed: {err}")
            raise err
        return value

    def get_param_min_max_step(self, handle: Handle, control: QHYControlId) -> tuple[float, float, float]:
        lo, hi, step = c_double(), c_double(), c_double()
        self.check(self.so.GetQHYCCDParamMinMaxStep(handle, int(control), byref(lo), byref(hi), byref(step)),
                   GetMinMaxStepError, f'GetQHYCCDParamMinMaxStep({control.name})', control=control)
        return lo.value, hi.value, step.value

    def set_param(self, handle: Handle, control: QHYControlId, value: float) -> None:
        self.check(self.so.SetQHYCCDParam(handle, int(control), ctypes.c_double(value)), SetParameterError,
                   f'SetQHYCCDParam({control.name}, {value})', control=control)

    def is_cfw_plugged(self, handle: Handle) -> bool:
        ret = self.so.IsQHYCCDCFWPlugged(handle)
        if ret == QHYCCD_SUCCESS:
            return True
        if ret == QHYCCD_ERROR:
            return False
        err = IsCfwPluggedInError(error_code=ret)
        logger.error(f"SDK function 'IsQHYCCDCFWPlugged' failed: {err}")
        raise err
