import logging
import threading
from enum import IntFlag, auto
from typing import List

from qhyccd.utils import Component, init_log

from .backend import QHYBackend
from .controls import QHYControlId
from .errors import CameraNotOpenError, QHYError, SetParameterError
from .models import (
    CCDChipArea,
    CCDChipInfo,
    ImageData,
    QHYCameraSettingsModel,
    ReadoutMode,
    StreamMode,
)

logger = logging.getLogger('qhyccd.camera')
init_log(logger)

# the SDK reports the last few microseconds of an exposure inaccurately
REMAINING_EXPOSURE_THRESHOLD_US = 100


class QHYActivities(IntFlag):
    Opening = auto()
    SettingParameters = auto()
    Exposing = auto()
    ReadingOut = auto()
    Live = auto()
    Saving = auto()


class Camera(Component):
    """
    A QHYCCD camera, identified by the id reported by the SDK (e.g. 'QHY178M-222b16468c5966524').

    The camera must be opened before anything else can be done with it.  Calls are
    serialized, the same Camera may be shared by a FilterWheel and a Cooler.
    """

    def __init__(self, camera_id: str, backend: QHYBackend):
        Component.__init__(self)
        self.id = camera_id
        self.backend = backend
        self.handle = None
        self.logger = logger
        self._lock = threading.RLock()

        self.model: str | None = None
        self.chip_info: CCDChipInfo | None = None
        self.effective_area: CCDChipArea | None = None
        self.latest_settings: QHYCameraSettingsModel | None = None

    def __repr__(self):
        return f"<Camera>(id='{self.id}', open={self.is_open}, simulated={self.backend.simulated})"

    @property
    def name(self) -> str:
        return self.id

    @property
    def is_open(self) -> bool:
        return self.handle is not None

    def _ensure_open(self):
        if self.handle is None:
            err = CameraNotOpenError()
            self.error(f"{err}")
            raise err

    def sdk_call(self, func_name: str, *args):
        """
        Calls a backend operation on this camera's handle.
        :param func_name: The name of the QHYBackend method
        :param args: Arguments following the handle
        """
        with self._lock:
            self._ensure_open()
            try:
                ret = getattr(self.backend, func_name)(self.handle, *args)
            except QHYError as e:
                self.error(f"{func_name}{args}: {e}")
                raise
            self.debug(f"{func_name}{args} returned {ret!r}")
            return ret

    #
    # Lifecycle
    #
    def open(self):
        with self._lock:
            if self.handle is not None:
                return
            self.start_activity(QHYActivities.Opening)
            try:
                self.handle = self.backend.open(self.id)
            finally:
                self.end_activity(QHYActivities.Opening)
            self.info("opened")

    def close(self):
        with self._lock:
            if self.handle is None:
                return
            self.backend.close(self.handle)
            self.handle = None
            self.activities = QHYActivities(0)
            self.info("closed")

    def init(self):
        self.sdk_call('init')

    #
    # Configuration
    #
    def set_stream_mode(self, mode: StreamMode):
        self.sdk_call('set_stream_mode', StreamMode(mode))

    def set_readout_mode(self, mode: int):
        self.sdk_call('set_readout_mode', mode)

    def set_bin_mode(self, bin_x: int, bin_y: int):
        self.sdk_call('set_bin_mode', bin_x, bin_y)

    def set_debayer(self, on: bool):
        self.sdk_call('set_debayer', on)

    def set_roi(self, roi: CCDChipArea):
        self.sdk_call('set_roi', roi)

    def set_bit_mode(self, bits: int):
        self.sdk_call('set_bit_mode', bits)

    #
    # Info
    #
    def get_model(self) -> str:
        with self._lock:
            self._ensure_open()
            self.model = self.backend.get_model(self.id)
            return self.model

    def get_firmware_version(self) -> str:
        buf = self.sdk_call('get_firmware_version')
        year = buf[0] >> 4
        if year <= 9:
            year += 0x10
        return f"Firmware version: 20{year}_{buf[0] & 0x0F}_{buf[1]}"

    def get_type(self) -> int:
        return self.sdk_call('get_type')

    def get_ccd_info(self) -> CCDChipInfo:
        self.chip_info = self.sdk_call('get_chip_info')
        return self.chip_info

    def get_overscan_area(self) -> CCDChipArea:
        return self.sdk_call('get_overscan_area')

    def get_effective_area(self) -> CCDChipArea:
        self.effective_area = self.sdk_call('get_effective_area')
        return self.effective_area

    #
    # Readout modes
    #
    def get_number_of_readout_modes(self) -> int:
        return self.sdk_call('get_number_of_readout_modes')

    def get_readout_mode_name(self, index: int) -> str:
        return self.sdk_call('get_readout_mode_name', index)

    def get_readout_mode_resolution(self, index: int) -> tuple[int, int]:
        return self.sdk_call('get_readout_mode_resolution', index)

    def get_readout_mode(self) -> int:
        return self.sdk_call('get_readout_mode')

    def get_readout_modes(self) -> List[ReadoutMode]:
        return [
            ReadoutMode(id=i, name=self.get_readout_mode_name(i), resolution=self.get_readout_mode_resolution(i))
            for i in range(self.get_number_of_readout_modes())
        ]

    #
    # Imaging
    #
    def begin_live(self):
        self.sdk_call('begin_live')
        self.start_activity(QHYActivities.Live)

    def end_live(self):
        self.sdk_call('end_live')
        self.end_activity(QHYActivities.Live)

    def get_image_size(self) -> int:
        """The size, in bytes, of the buffer needed for a frame with the current settings"""
        return self.sdk_call('get_mem_length')

    def get_live_frame(self, buffer_size: int) -> ImageData:
        """Raises GetLiveFrameError while no new frame is ready, callers are expected to retry"""
        with self._lock:
            self._ensure_open()
            return self.backend.get_live_frame(self.handle, buffer_size)

    def start_single_frame_exposure(self):
        self.sdk_call('exp_single_frame')
        self.start_activity(QHYActivities.Exposing)

    def get_single_frame(self, buffer_size: int) -> ImageData:
        """Blocks until the exposure started by start_single_frame_exposure() has been read out"""
        self.end_activity(QHYActivities.Exposing)
        self.start_activity(QHYActivities.ReadingOut)
        try:
            return self.sdk_call('get_single_frame', buffer_size)
        finally:
            self.end_activity(QHYActivities.ReadingOut)

    def get_remaining_exposure_us(self) -> int:
        remaining = self.sdk_call('get_exposure_remaining')
        return 0 if remaining <= REMAINING_EXPOSURE_THRESHOLD_US else remaining

    def stop_exposure(self):
        self.sdk_call('cancel_exposing')
        self.end_activity(QHYActivities.Exposing)

    def abort_exposure_and_readout(self):
        self.sdk_call('cancel_exposing_and_readout')
        self.end_activity(QHYActivities.Exposing)
        self.end_activity(QHYActivities.ReadingOut)

    #
    # Parameters
    #
    def is_control_available(self, control: QHYControlId) -> int | None:
        """
        None when the camera does not support the control, otherwise the value the SDK returned
         (for CAM_COLOR that is the BayerMode of the sensor)
        """
        return self.sdk_call('is_control_available', QHYControlId(control))

    def get_parameter(self, control: QHYControlId) -> float:
        return self.sdk_call('get_param', QHYControlId(control))

    def get_parameter_min_max_step(self, control: QHYControlId) -> tuple[float, float, float]:
        return self.sdk_call('get_param_min_max_step', QHYControlId(control))

    def set_parameter(self, control: QHYControlId, value: float):
        self.sdk_call('set_param', QHYControlId(control), float(value))

    def set_if_available(self, control: QHYControlId, value: float):
        if self.is_control_available(control) is None:
            err = SetParameterError(control=QHYControlId(control))
            self.error(f"{err}: control not available")
            raise err
        self.set_parameter(control, value)

    def is_cfw_plugged_in(self) -> bool:
        return self.sdk_call('is_cfw_plugged')

    def apply_settings(self, settings: QHYCameraSettingsModel, roi: CCDChipArea | None = None):
        """
        Enforces acquisition settings onto an opened and initialized camera (the readout mode
         must already be set, before init()):
        * USB traffic, gain, offset and DDR, where available (skipped with a warning otherwise)
        * exposure
        * the region of interest (the settings' roi, else 'roi', else the effective area), then binning
        * bit depth, plus CONTROL_TRANSFERBIT when the camera has it
        :param settings: The settings to apply
        :param roi: The region of interest to use when the settings have none
        """
        self.start_activity(QHYActivities.SettingParameters)
        try:
            optional = {
                QHYControlId.CONTROL_USBTRAFFIC: settings.usb_traffic,
                QHYControlId.CONTROL_GAIN: settings.gain,
                QHYControlId.CONTROL_OFFSET: settings.offset,
                QHYControlId.CONTROL_DDR: None if settings.ddr is None else float(settings.ddr),
            }
            for control, value in optional.items():
                if value is None:
                    continue
                if self.is_control_available(control) is None:
                    self.warning(f"{control.name} not available, not set to {value}")
                    continue
                self.set_parameter(control, value)

            self.set_parameter(QHYControlId.CONTROL_EXPOSURE, settings.exposure_us)

            if settings.roi is not None:
                roi = settings.roi.to_area()
            elif roi is None:
                roi = self.get_effective_area()
            self.set_roi(roi)
            self.set_bin_mode(settings.binning.x, settings.binning.y)

            self.set_bit_mode(settings.depth)
            if self.is_control_available(QHYControlId.CONTROL_TRANSFERBIT) is not None:
                self.set_parameter(QHYControlId.CONTROL_TRANSFERBIT, settings.depth)

            self.latest_settings = settings
        finally:
            self.end_activity(QHYActivities.SettingParameters)

    #
    # Component
    #
    def startup(self):
        self.open()

    def shutdown(self):
        if not self.is_open:
            return
        self.abort()
        self.close()

    def abort(self):
        if not self.is_open:
            return
        if self.is_active(QHYActivities.Exposing) or self.is_active(QHYActivities.ReadingOut):
            self.abort_exposure_and_readout()
        if self.is_active(QHYActivities.Live):
            self.end_live()

    def status(self) -> dict:
        ret = {
            'id': self.id,
            'simulated': self.backend.simulated,
            'open': self.is_open,
            'operational': self.operational,
            'why_not_operational': self.why_not_operational,
            'activities': self.activities,
            'activities_verbal': 'Idle' if self.activities == 0 else self.activities.__repr__(),
        }
        if self.is_open:
            ret |= {
                'model': self.model,
                'chip_info': self.chip_info.model_dump() if self.chip_info else None,
                'effective_area': self.effective_area.model_dump() if self.effective_area else None,
                'latest_settings': self.latest_settings.model_dump(mode='json') if self.latest_settings else None,
            }
        return ret

    @property
    def operational(self) -> bool:
        return self.is_open

    @property
    def why_not_operational(self) -> List[str]:
        if not self.is_open:
            return [f"{self.name}: not open"]
        return []
