import logging
from enum import IntFlag, auto
from typing import List

from fastapi.routing import APIRouter

from qhyccd.cameras.qhy.camera import Camera
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import QHYError
from qhyccd.config.config import Config
from qhyccd.utils import BASE_QHYCCD_PATH, Component, RepeatTimer, init_log

MAX_PWM = 255


class CoolerActivities(IntFlag):
    CoolingDown = auto()
    WarmingUp = auto()


class Cooler(Component):
    """
    The thermo-electric cooler of a QHY camera (cameras exposing CONTROL_COOLER).

    The SDK regulates the sensor temperature once a target is set (CONTROL_COOLER), or runs
     the TEC at a fixed duty cycle (CONTROL_MANULPWM).  cool_down() and warm_up() start an
     activity which a timer ends when the sensor is within 'tolerance' of the goal.
    """

    def __init__(self, camera: Camera):
        Component.__init__(self)
        self.camera = camera
        self.conf = Config().get_cooler()
        self.logger = logging.getLogger('qhyccd.cooler')
        init_log(self.logger)

        self.target: float | None = None
        self.timer: RepeatTimer | None = None

    def __repr__(self):
        return f"<Cooler>(camera='{self.camera.id}')"

    @property
    def name(self) -> str:
        return f"cooler-{self.camera.id}"

    @property
    def temperature(self) -> float:
        return self.camera.get_parameter(QHYControlId.CONTROL_CURTEMP)

    @property
    def pwm(self) -> float:
        return self.camera.get_parameter(QHYControlId.CONTROL_CURPWM)

    def get_target(self) -> float:
        return self.camera.get_parameter(QHYControlId.CONTROL_COOLER)

    def set_target(self, celsius: float):
        self.camera.set_if_available(QHYControlId.CONTROL_COOLER, celsius)
        self.target = celsius
        self.info(f"target temperature set to {celsius}")

    def set_manual_pwm(self, pwm: float):
        if not 0 <= pwm <= MAX_PWM:
            raise ValueError(f"PWM must be within [0, {MAX_PWM}], not {pwm}")
        self.camera.set_if_available(QHYControlId.CONTROL_MANULPWM, pwm)
        self.target = None
        self.info(f"manual PWM set to {pwm}")

    def cool_down(self):
        self.end_activity(CoolerActivities.WarmingUp)
        self.set_target(self.conf.target_cool)
        self.start_activity(CoolerActivities.CoolingDown)
        self._start_timer()

    def warm_up(self):
        self.end_activity(CoolerActivities.CoolingDown)
        self.set_target(self.conf.target_warm)
        self.start_activity(CoolerActivities.WarmingUp)
        self._start_timer()

    def _start_timer(self):
        if self.timer is not None:
            return
        self.timer = RepeatTimer(self.conf.check_interval, function=self.on_timer)
        self.timer.name = f'{self.name}-timer-thread'
        self.timer.daemon = True
        self.timer.start()

    def _stop_timer(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def on_timer(self):
        """
        Called periodically by a timer.
        Ends CoolingDown/WarmingUp once the sensor temperature is close enough to the goal.
        """
        if not (self.is_active(CoolerActivities.CoolingDown) or self.is_active(CoolerActivities.WarmingUp)):
            return
        if not self.camera.is_open:
            return

        try:
            temp = self.temperature
        except QHYError as e:
            self.error(f"failed reading sensor temperature ({e})")
            return

        if self.is_active(CoolerActivities.CoolingDown) and abs(temp - self.conf.target_cool) <= self.conf.tolerance:
            self.end_activity(CoolerActivities.CoolingDown)
        if self.is_active(CoolerActivities.WarmingUp) and abs(temp - self.conf.target_warm) <= self.conf.tolerance:
            self.end_activity(CoolerActivities.WarmingUp)

        if self.is_idle():
            self._stop_timer()

    #
    # Component
    #
    def startup(self):
        self.camera.open()

    def shutdown(self):
        self._stop_timer()

    def abort(self):
        self._stop_timer()
        self.end_activity(CoolerActivities.CoolingDown)
        self.end_activity(CoolerActivities.WarmingUp)

    def status(self) -> dict:
        ret = {
            'id': self.camera.id,
            'operational': self.operational,
            'why_not_operational': self.why_not_operational,
            'activities': self.activities,
            'activities_verbal': 'Idle' if self.activities == 0 else self.activities.__repr__(),
        }
        if self.camera.is_open:
            ret['temperature'] = self.temperature
            ret['pwm'] = self.pwm
            ret['target'] = self.target
        return ret

    @property
    def operational(self) -> bool:
        return (self.camera.is_open and not
                (self.is_active(CoolerActivities.CoolingDown) or self.is_active(CoolerActivities.WarmingUp)))

    @property
    def why_not_operational(self) -> List[str]:
        ret = []
        label = f"{self.name}:"
        if not self.camera.is_open:
            ret.append(f"{label} camera not open")
        if self.is_active(CoolerActivities.CoolingDown):
            ret.append(f'{label} is CoolingDown')
        if self.is_active(CoolerActivities.WarmingUp):
            ret.append(f'{label} is WarmingUp')
        return ret


def cooler_by_id(camera_id: str) -> Cooler | None:
    from qhyccd.cameras.qhy.sdk import SdkFactory

    for c in SdkFactory.get_instance().coolers:
        if c.camera.id == camera_id:
            return c
    return None


def get_status(camera_id: str):
    c = cooler_by_id(camera_id)
    if c is None:
        return {'Error': f"no cooler on camera '{camera_id}'"}
    return c.status()


def cool_down(camera_id: str):
    c = cooler_by_id(camera_id)
    if c is None:
        return {'Error': f"no cooler on camera '{camera_id}'"}
    c.cool_down()


def warm_up(camera_id: str):
    c = cooler_by_id(camera_id)
    if c is None:
        return {'Error': f"no cooler on camera '{camera_id}'"}
    c.warm_up()


base_path = BASE_QHYCCD_PATH + 'cooler'
tag = 'Cooler'
router = APIRouter()

router.add_api_route(base_path + '/status', tags=[tag], endpoint=get_status)
router.add_api_route(base_path + '/cool_down', tags=[tag], endpoint=cool_down)
router.add_api_route(base_path + '/warm_up', tags=[tag], endpoint=warm_up)
