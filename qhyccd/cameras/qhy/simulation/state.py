import threading
import time
from enum import Enum

from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.models import CCDChipArea, StreamMode

from .config import SimulatedCameraConfig

AMBIENT_TEMPERATURE = 20.0      # celsius
MIN_TEMPERATURE = -40.0         # celsius, what full manual PWM eventually gets to
COOLING_RATE = 1.0              # celsius per second at full PWM
WARMING_RATE = 0.5              # celsius per second, cooler off
PWM_GAIN = 50.0                 # PWM units per celsius above the target
MAX_PWM = 255.0

# initial values, controls not listed start at the middle of their range
INITIAL_PARAMETERS = {
    QHYControlId.CONTROL_GAIN: 0.0,
    QHYControlId.CONTROL_OFFSET: 10.0,
    QHYControlId.CONTROL_EXPOSURE: 1000.0,
    QHYControlId.CONTROL_SPEED: 0.0,
    QHYControlId.CONTROL_USBTRAFFIC: 50.0,
    QHYControlId.CONTROL_TRANSFERBIT: 16.0,
    QHYControlId.CONTROL_CFWPORT: 0.0,
    QHYControlId.CONTROL_CURTEMP: AMBIENT_TEMPERATURE,
    QHYControlId.CONTROL_CURPWM: 0.0,
    QHYControlId.CONTROL_COOLER: AMBIENT_TEMPERATURE,
    QHYControlId.CONTROL_MANULPWM: 0.0,
}


class CoolerMode(Enum):
    Off = 'off'
    Auto = 'auto'           # regulates towards target_temperature
    Manual = 'manual'       # runs at a fixed PWM


class SimulatedCameraState:
    """
    The runtime state of one simulated camera.  It is shared by everybody holding the
     camera (Camera, FilterWheel, Cooler), access it under 'lock'.
    """

    def __init__(self, config: SimulatedCameraConfig):
        self.config = config
        self.lock = threading.RLock()

        self.is_open = False
        self.is_initialized = False
        self.stream_mode: StreamMode | None = None
        self.parameters: dict[QHYControlId, float] = {}
        for control, (lo, hi, _) in config.supported_controls.items():
            if control == QHYControlId.CONTROL_CFWSLOTSNUM:
                self.parameters[control] = float(config.filter_wheel_slots)
            else:
                self.parameters[control] = INITIAL_PARAMETERS.get(control, (lo + hi) / 2)

        self.roi: CCDChipArea = config.effective_area.model_copy()
        self.binning: tuple[int, int] = (1, 1)
        self.bit_depth: int = config.chip_info.bits_per_pixel
        self.readout_mode: int = 0
        self.live_mode_active = False
        self.debayer_enabled = False

        self.exposure_start: float | None = None
        self.exposure_duration_us: float = 1000.0

        self.filter_wheel_position: int = 0

        self.cooler_mode = CoolerMode.Off
        self.target_temperature = AMBIENT_TEMPERATURE
        self.current_temperature = AMBIENT_TEMPERATURE
        self.cooler_pwm = 0.0
        self._last_temperature_update = time.monotonic()

    def __repr__(self):
        return f"<SimulatedCameraState>(id='{self.config.id}', open={self.is_open})"

    #
    # Geometry
    #
    def image_dimensions(self) -> tuple[int, int]:
        return self.roi.width // self.binning[0], self.roi.height // self.binning[1]

    def bytes_per_pixel(self) -> int:
        return 1 if self.bit_depth <= 8 else 2

    def channels(self) -> int:
        return 3 if self.config.bayer_mode is not None and self.debayer_enabled else 1

    def buffer_size(self) -> int:
        width, height = self.image_dimensions()
        return width * height * self.bytes_per_pixel() * self.channels()

    #
    # Exposure
    #
    def start_exposure(self):
        self.exposure_start = time.monotonic()
        if QHYControlId.CONTROL_EXPOSURE in self.parameters:
            self.exposure_duration_us = self.parameters[QHYControlId.CONTROL_EXPOSURE]

    def cancel_exposure(self):
        self.exposure_start = None

    def remaining_exposure_us(self) -> int:
        if self.exposure_start is None:
            return 0
        elapsed_us = (time.monotonic() - self.exposure_start) * 1_000_000
        return max(0, int(self.exposure_duration_us - elapsed_us))

    def is_exposure_complete(self) -> bool:
        return self.remaining_exposure_us() == 0

    #
    # Cooler
    #
    def set_target_temperature(self, celsius: float):
        self.update_temperature()
        self.cooler_mode = CoolerMode.Auto
        self.target_temperature = celsius

    def set_manual_pwm(self, pwm: float):
        self.update_temperature()
        self.cooler_pwm = min(max(pwm, 0.0), MAX_PWM)
        self.cooler_mode = CoolerMode.Manual if self.cooler_pwm > 0 else CoolerMode.Off

    def update_temperature(self, dt: float | None = None):
        """
        Advances the temperature model by 'dt' seconds (default: the time since the previous update).
        * Auto: the PWM is proportional to how far above target we are, the chip cools at a rate
           proportional to the PWM and never undershoots the target.
        * Manual: the chip cools at the rate set by the fixed PWM, down to MIN_TEMPERATURE.
        * Off, or already below an automatic target: the chip drifts back towards ambient.
        """
        now = time.monotonic()
        if dt is None:
            dt = now - self._last_temperature_update
        self._last_temperature_update = now
        if not self.config.has_cooler or dt <= 0:
            return

        if self.cooler_mode == CoolerMode.Auto and self.current_temperature > self.target_temperature:
            diff = self.current_temperature - self.target_temperature
            self.cooler_pwm = min(max(diff * PWM_GAIN, 0.0), MAX_PWM)
            self.current_temperature -= min(diff, self.cooler_pwm / MAX_PWM * COOLING_RATE * dt)
        elif self.cooler_mode == CoolerMode.Manual:
            self.current_temperature = max(MIN_TEMPERATURE,
                                           self.current_temperature - self.cooler_pwm / MAX_PWM * COOLING_RATE * dt)
        else:
            if self.cooler_mode == CoolerMode.Auto:
                self.cooler_pwm = 0.0
                goal = min(self.target_temperature, AMBIENT_TEMPERATURE)
            else:
                goal = AMBIENT_TEMPERATURE
            if self.current_temperature < goal:
                self.current_temperature = min(goal, self.current_temperature + WARMING_RATE * dt)

        self.parameters[QHYControlId.CONTROL_CURTEMP] = self.current_temperature
        self.parameters[QHYControlId.CONTROL_CURPWM] = self.cooler_pwm
