import functools
import logging
import time

from qhyccd.cameras.qhy.backend import QHYBackend
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import (
    CameraNotOpenError,
    GetCameraIdError,
    GetCameraModelError,
    GetLiveFrameError,
    GetMinMaxStepError,
    GetParameterError,
    GetReadoutModeNameError,
    GetReadoutModeResolutionError,
    GetSingleFrameError,
    OpenCameraError,
    SetBinModeError,
    SetParameterError,
    SetReadoutModeError,
)
from qhyccd.cameras.qhy.models import CCDChipArea, CCDChipInfo, ImageData, SDKVersion, StreamMode
from qhyccd.cameras.qhy.prototypes import QHYCCD_ERROR, QHYCCD_SUCCESS
from qhyccd.utils import init_log

from .config import SimulatedCameraConfig
from .image_generator import ImageGenerator
from .state import SimulatedCameraState

logger = logging.getLogger('qhyccd.simulation')
init_log(logger)

# the SDK release the simulation pretends to be
SIMULATED_SDK_VERSION = SDKVersion(year=24, month=12, day=26, subday=0)

# granularity of the wait in get_single_frame()
EXPOSURE_POLL_INTERVAL = 0.01


def when_open(func):
    """Runs a backend method under the camera state's lock, provided the camera is open"""
    @functools.wraps(func)
    def wrapper(self, state: SimulatedCameraState, *args, **kwargs):
        with state.lock:
            if not state.is_open:
                raise CameraNotOpenError()
            return func(self, state, *args, **kwargs)
    return wrapper


class SimulatedBackend(QHYBackend):
    """
    A QHYBackend without hardware.  Cameras are registered with add_camera() and the handle
     returned by open() is the camera's SimulatedCameraState, so everybody opening the same
     camera id shares one state.
    """

    simulated = True

    def __init__(self, generator: ImageGenerator | None = None):
        self.states: dict[str, SimulatedCameraState] = {}
        self.generator = generator if generator is not None else ImageGenerator()
        self.initialized = False

    def add_camera(self, config: SimulatedCameraConfig) -> SimulatedCameraState:
        state = SimulatedCameraState(config)
        self.states[config.id] = state
        logger.info(f"added simulated camera '{config.id}' (model='{config.model}', "
                    f"filter_wheel_slots={config.filter_wheel_slots}, cooler={config.has_cooler})")
        return state

    #
    # SDK
    #
    def init_resource(self) -> None:
        self.initialized = True

    def release_resource(self) -> None:
        self.initialized = False

    def scan(self) -> int:
        return len(self.states)

    def get_id(self, index: int) -> str:
        ids = list(self.states.keys())
        if not 0 <= index < len(ids):
            raise GetCameraIdError(error_code=QHYCCD_ERROR)
        return ids[index]

    def get_sdk_version(self) -> SDKVersion:
        return SIMULATED_SDK_VERSION.model_copy()

    #
    # Lifecycle
    #
    def open(self, camera_id: str) -> SimulatedCameraState:
        if camera_id not in self.states:
            raise OpenCameraError()
        state = self.states[camera_id]
        with state.lock:
            state.is_open = True
        return state

    def close(self, state: SimulatedCameraState) -> None:
        with state.lock:
            state.is_open = False
            state.is_initialized = False
            state.live_mode_active = False
            state.cancel_exposure()

    @staticmethod
    def _mode_resolution(state: SimulatedCameraState) -> tuple[int, int]:
        modes = state.config.readout_modes
        if state.readout_mode < len(modes):
            return modes[state.readout_mode][1]
        return state.config.chip_info.image_width, state.config.chip_info.image_height

    @when_open
    def init(self, state: SimulatedCameraState) -> None:
        state.is_initialized = True
        width, height = self._mode_resolution(state)
        state.roi = CCDChipArea(start_x=0, start_y=0, width=width, height=height)

    #
    # Configuration
    #
    @when_open
    def set_stream_mode(self, state: SimulatedCameraState, mode: StreamMode) -> None:
        state.stream_mode = StreamMode(mode)

    @when_open
    def set_readout_mode(self, state: SimulatedCameraState, mode: int) -> None:
        if not 0 <= mode < len(state.config.readout_modes):
            raise SetReadoutModeError(error_code=QHYCCD_ERROR)
        state.readout_mode = mode

    @when_open
    def set_bin_mode(self, state: SimulatedCameraState, bin_x: int, bin_y: int) -> None:
        if bin_x < 1 or bin_y < 1:
            raise SetBinModeError(error_code=QHYCCD_ERROR)
        state.binning = (bin_x, bin_y)

    @when_open
    def set_debayer(self, state: SimulatedCameraState, on: bool) -> None:
        state.debayer_enabled = on

    @when_open
    def set_roi(self, state: SimulatedCameraState, roi: CCDChipArea) -> None:
        state.roi = roi.model_copy()

    @when_open
    def set_bit_mode(self, state: SimulatedCameraState, bits: int) -> None:
        state.bit_depth = bits

    #
    # Info
    #
    def get_model(self, camera_id: str) -> str:
        if camera_id not in self.states:
            raise GetCameraModelError(error_code=QHYCCD_ERROR)
        return self.states[camera_id].config.model

    @when_open
    def get_firmware_version(self, state: SimulatedCameraState) -> bytes:
        return state.config.firmware_buffer()

    @when_open
    def get_type(self, state: SimulatedCameraState) -> int:
        return state.config.camera_type

    @when_open
    def get_chip_info(self, state: SimulatedCameraState) -> CCDChipInfo:
        return state.config.chip_info.model_copy()

    @when_open
    def get_overscan_area(self, state: SimulatedCameraState) -> CCDChipArea:
        return state.config.overscan_area.model_copy()

    @when_open
    def get_effective_area(self, state: SimulatedCameraState) -> CCDChipArea:
        # readout modes with a lower resolution have no room for the configured area
        area = state.config.effective_area
        width, height = self._mode_resolution(state)
        if area.start_x + area.width > width or area.start_y + area.height > height:
            return CCDChipArea(start_x=0, start_y=0, width=width, height=height)
        return area.model_copy()

    @when_open
    def get_number_of_readout_modes(self, state: SimulatedCameraState) -> int:
        return len(state.config.readout_modes)

    @when_open
    def get_readout_mode_name(self, state: SimulatedCameraState, index: int) -> str:
        if not 0 <= index < len(state.config.readout_modes):
            raise GetReadoutModeNameError(error_code=QHYCCD_ERROR)
        return state.config.readout_modes[index][0]

    @when_open
    def get_readout_mode_resolution(self, state: SimulatedCameraState, index: int) -> tuple[int, int]:
        if not 0 <= index < len(state.config.readout_modes):
            raise GetReadoutModeResolutionError(error_code=QHYCCD_ERROR)
        return state.config.readout_modes[index][1]

    @when_open
    def get_readout_mode(self, state: SimulatedCameraState) -> int:
        return state.readout_mode

    #
    # Imaging
    #
    @when_open
    def begin_live(self, state: SimulatedCameraState) -> None:
        state.live_mode_active = True

    @when_open
    def end_live(self, state: SimulatedCameraState) -> None:
        state.live_mode_active = False

    @when_open
    def get_mem_length(self, state: SimulatedCameraState) -> int:
        return state.buffer_size()

    def _make_frame(self, state: SimulatedCameraState, buffer_size: int, error: type) -> ImageData:
        needed = state.buffer_size()
        if buffer_size < needed:
            logger.error(f"{state.config.id}: buffer of {buffer_size} bytes, {needed} needed")
            raise error(error_code=QHYCCD_ERROR)
        width, height = state.image_dimensions()
        channels = state.channels()
        data = self.generator.generate(width, height, channels, state.bit_depth)
        return ImageData(
            data=data + bytes(buffer_size - len(data)),
            width=width,
            height=height,
            bits_per_pixel=state.bit_depth,
            channels=channels,
        )

    @when_open
    def get_live_frame(self, state: SimulatedCameraState, buffer_size: int) -> ImageData:
        if not state.live_mode_active:
            raise GetLiveFrameError(error_code=QHYCCD_ERROR)
        return self._make_frame(state, buffer_size, GetLiveFrameError)

    def get_single_frame(self, state: SimulatedCameraState, buffer_size: int) -> ImageData:
        # wait for the exposure without holding the lock, the cooler keeps being polled meanwhile
        while True:
            with state.lock:
                if not state.is_open:
                    raise CameraNotOpenError()
                if state.exposure_start is None or state.is_exposure_complete():
                    image = self._make_frame(state, buffer_size, GetSingleFrameError)
                    state.exposure_start = None
                    return image
            time.sleep(EXPOSURE_POLL_INTERVAL)

    @when_open
    def exp_single_frame(self, state: SimulatedCameraState) -> None:
        state.start_exposure()

    @when_open
    def get_exposure_remaining(self, state: SimulatedCameraState) -> int:
        return state.remaining_exposure_us()

    @when_open
    def cancel_exposing(self, state: SimulatedCameraState) -> None:
        state.cancel_exposure()

    @when_open
    def cancel_exposing_and_readout(self, state: SimulatedCameraState) -> None:
        state.cancel_exposure()

    #
    # Parameters
    #
    @when_open
    def is_control_available(self, state: SimulatedCameraState, control: QHYControlId) -> int | None:
        if control not in state.config.supported_controls:
            return None
        if control == QHYControlId.CAM_COLOR:
            return None if state.config.bayer_mode is None else int(state.config.bayer_mode)
        return QHYCCD_SUCCESS

    @when_open
    def get_param(self, state: SimulatedCameraState, control: QHYControlId) -> float:
        if control == QHYControlId.CONTROL_CFWPORT:
            return float(state.filter_wheel_position + 48)
        elif control == QHYControlId.CONTROL_CFWSLOTSNUM:
            return float(state.config.filter_wheel_slots)
        elif control == QHYControlId.CONTROL_CURTEMP:
            state.update_temperature()
            return state.current_temperature
        elif control == QHYControlId.CONTROL_CURPWM:
            state.update_temperature()
            return state.cooler_pwm
        elif control == QHYControlId.CONTROL_COOLER:
            if control not in state.config.supported_controls:
                raise GetParameterError(control=control)
            return state.target_temperature

        if control not in state.parameters:
            raise GetParameterError(control=control)
        return state.parameters[control]

    @when_open
    def get_param_min_max_step(self, state: SimulatedCameraState, control: QHYControlId) -> tuple[float, float, float]:
        if control not in state.config.supported_controls:
            raise GetMinMaxStepError(error_code=QHYCCD_ERROR, control=control)
        return state.config.supported_controls[control]

    @when_open
    def set_param(self, state: SimulatedCameraState, control: QHYControlId, value: float) -> None:
        if control not in state.config.supported_controls:
            raise SetParameterError(error_code=QHYCCD_ERROR, control=control)
        if control == QHYControlId.CONTROL_CFWPORT:
            # the port takes the ASCII code of the position digit
            state.filter_wheel_position = max(int(value) - 48, 0)
        elif control == QHYControlId.CONTROL_COOLER:
            state.set_target_temperature(value)
        elif control == QHYControlId.CONTROL_MANULPWM:
            state.set_manual_pwm(value)
        elif control == QHYControlId.CONTROL_EXPOSURE:
            state.exposure_duration_us = value
        state.parameters[control] = value

    @when_open
    def is_cfw_plugged(self, state: SimulatedCameraState) -> bool:
        return state.config.filter_wheel_slots > 0
