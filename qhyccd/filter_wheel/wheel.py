import logging
import time
from enum import IntFlag, auto
from typing import List

from fastapi import APIRouter

from qhyccd.cameras.qhy.camera import Camera
from qhyccd.cameras.qhy.controls import QHYControlId
from qhyccd.cameras.qhy.errors import (
    CloseFilterWheelError,
    GetCfwPositionError,
    GetNumberOfFiltersError,
    OpenFilterWheelError,
    QHYError,
    SetCfwPositionError,
)
from qhyccd.config.config import Config
from qhyccd.utils import BASE_QHYCCD_PATH, Component, RepeatTimer, init_log

# the CFW port reports and accepts positions as ASCII digits
ASCII_ZERO = 48

POLL_INTERVAL = 1.0     # seconds


class WheelActivities(IntFlag):
    StartingUp = auto()
    ShuttingDown = auto()
    Moving = auto()


class FilterWheel(Component):
    """
    A QHY CFW, plugged into (and driven through) a camera.  The wheel shares the camera's
     handle, opening the wheel opens the camera.

    Position names come from the '[filter-wheel.<camera id>]' configuration table.
    """

    def __init__(self, camera: Camera):
        Component.__init__(self)
        self.camera = camera
        self.logger = logging.getLogger('qhyccd.filter-wheel')
        init_log(self.logger)

        self.conf = Config().get_filter_wheel(camera.id)
        self.positions: dict[int, str] = {}
        for k, v in self.conf.items():
            if k == 'default':
                continue
            self.positions[int(k)] = v
        self.default_position: int | None = self.conf['default'] if 'default' in self.conf else None

        self.target: int | None = None
        self.timer: RepeatTimer | None = None

    def __repr__(self):
        return f"<FilterWheel>(camera='{self.camera.id}')"

    @property
    def id(self) -> str:
        return self.camera.id

    @property
    def name(self) -> str:
        return f"fw-{self.camera.id}"

    #
    # Lifecycle
    #
    def open(self):
        try:
            self.camera.open()
        except QHYError as e:
            err = OpenFilterWheelError()
            self.error(f"{err} ({e})")
            raise err from e

        if self.timer is None:
            self.timer = RepeatTimer(POLL_INTERVAL, function=self.ontimer)
            self.timer.name = f'{self.name}-timer-thread'
            self.timer.daemon = True
            self.timer.start()

    def close(self):
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        try:
            self.camera.close()
        except QHYError as e:
            err = CloseFilterWheelError()
            self.error(f"{err} ({e})")
            raise err from e

    @property
    def is_open(self) -> bool:
        return self.camera.is_open

    def is_cfw_plugged_in(self) -> bool:
        return self.camera.is_cfw_plugged_in()

    #
    # Positions
    #
    def get_number_of_filters(self) -> int:
        if self.camera.is_control_available(QHYControlId.CONTROL_CFWSLOTSNUM) is None:
            err = GetNumberOfFiltersError()
            self.error(f"{err}: CONTROL_CFWSLOTSNUM not available")
            raise err
        return int(self.camera.get_parameter(QHYControlId.CONTROL_CFWSLOTSNUM))

    def get_fw_position(self) -> int:
        if self.camera.is_control_available(QHYControlId.CONTROL_CFWPORT) is None:
            err = GetCfwPositionError()
            self.error(f"{err}: no filter wheel plugged in")
            raise err
        return int(self.camera.get_parameter(QHYControlId.CONTROL_CFWPORT) - ASCII_ZERO)

    def set_fw_position(self, position: int):
        if self.camera.is_control_available(QHYControlId.CONTROL_CFWPORT) is None:
            err = SetCfwPositionError()
            self.error(f"{err}: no filter wheel plugged in")
            raise err

        number_of_filters = self.get_number_of_filters()
        if not 0 <= position < number_of_filters:
            err = SetCfwPositionError()
            self.error(f"{err}: position {position} not in [0, {number_of_filters})")
            raise err

        try:
            self.camera.set_parameter(QHYControlId.CONTROL_CFWPORT, position + ASCII_ZERO)
        except QHYError as e:
            err = SetCfwPositionError(error_code=e.error_code)
            self.error(f"{err}")
            raise err from e

    @property
    def position(self) -> int | None:
        if not self.is_open:
            return None
        return self.get_fw_position()

    def name_to_number(self, pos_name: str) -> int:
        for k, v in self.positions.items():
            if v == pos_name:
                return k
        raise ValueError(f"Bad position name '{pos_name}'.  Known position names: {self.positions}")

    def move(self, pos: str | int):
        """
        Starts moving the wheel, the Moving activity ends when the wheel reports the target position.
        :param pos: A position number, or a configured position name
        """
        if isinstance(pos, str):
            try:
                pos = int(pos)
            except ValueError:
                pos = self.name_to_number(pos)

        if pos == self.position:
            self.debug(f"already at position {pos} ('{self.positions.get(pos)}')")
            return

        self.target = pos
        self.start_activity(WheelActivities.Moving)
        self.debug(f"moving to position {pos} ('{self.positions.get(pos)}')")
        try:
            self.set_fw_position(pos)
        except QHYError:
            self.target = None
            self.end_activity(WheelActivities.Moving)
            raise

    def wait_for_arrival(self, timeout: float = 30.0, interval: float = 0.1) -> bool:
        """Polls the wheel until it reaches the move() target. Returns False on timeout."""
        start = time.monotonic()
        while self.is_active(WheelActivities.Moving):
            self.ontimer()
            if not self.is_active(WheelActivities.Moving):
                break
            if time.monotonic() - start > timeout:
                self.warning(f"did not reach position {self.target} within {timeout} seconds")
                return False
            time.sleep(interval)
        return True

    def ontimer(self):
        if not self.is_open or not self.is_active(WheelActivities.Moving):
            return

        try:
            position = self.get_fw_position()
        except QHYError as e:
            self.error(f"could not get position ({e})")
            return

        if position == self.target:
            self.end_activity(WheelActivities.Moving)
            self.target = None

            if self.is_active(WheelActivities.StartingUp):
                self.end_activity(WheelActivities.StartingUp)
            if self.is_active(WheelActivities.ShuttingDown):
                self.end_activity(WheelActivities.ShuttingDown)

    #
    # Component
    #
    def startup(self):
        """
        Go to default position
        :return:
        """
        self.open()
        if self.default_position is not None and self.position != self.default_position:
            self.start_activity(WheelActivities.StartingUp)
            self.move(self.default_position)

    def shutdown(self):
        """
        Return to default position
        :return:
        """
        if not self.is_open:
            return
        if self.default_position is not None and self.position != self.default_position:
            self.start_activity(WheelActivities.ShuttingDown)
            self.move(self.default_position)
            self.wait_for_arrival()
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def abort(self):
        # The wheel cannot be stopped
        if self.is_active(WheelActivities.Moving):
            self.end_activity(WheelActivities.Moving)
            self.target = None

    def status(self) -> dict:
        ret = {
            'id': self.id,
            'open': self.is_open,
            'operational': self.operational,
            'why_not_operational': self.why_not_operational,
            'filters': self.positions,
        }

        if self.is_open:
            ret['activities'] = self.activities
            ret['activities_verbal'] = self.activities.__repr__()
            ret['idle'] = self.is_idle()
            ret['position'] = self.position
            ret['number_of_filters'] = self.get_number_of_filters()

        return ret

    @property
    def operational(self) -> bool:
        return self.is_open

    @property
    def why_not_operational(self) -> List[str]:
        ret = []
        label = f"filter-wheel '{self.name}':"
        if not self.is_open:
            ret.append(f'{label} not open')
        return ret


def wheel_by_id(camera_id: str) -> FilterWheel | None:
    from qhyccd.cameras.qhy.sdk import SdkFactory

    for w in SdkFactory.get_instance().filter_wheels:
        if w.id == camera_id:
            return w
    return None


def list_wheels():
    from qhyccd.cameras.qhy.sdk import SdkFactory

    ret = {}
    for wheel in SdkFactory.get_instance().filter_wheels:
        ret[wheel.id] = {
            'open': wheel.is_open,
            'positions': wheel.positions,
            'default': wheel.default_position,
        }
    return ret


def get_position(camera_id: str):
    w = wheel_by_id(camera_id)
    if w is None:
        return {'Error': f"no filter wheel on camera '{camera_id}'"}
    return w.position


def get_status(camera_id: str):
    w = wheel_by_id(camera_id)
    if w is None:
        return {'Error': f"no filter wheel on camera '{camera_id}'"}
    return w.status()


def move(camera_id: str, position: int | str):
    w = wheel_by_id(camera_id)
    if w is None:
        return {'Error': f"no filter wheel on camera '{camera_id}'"}
    try:
        w.move(position)
    except ValueError as e:
        return {'Error': f"{e}"}


base_path = BASE_QHYCCD_PATH + 'fw'
tag = 'Filter wheels'
router = APIRouter()

router.add_api_route(base_path, tags=[tag], endpoint=list_wheels)
router.add_api_route(base_path + '/position', tags=[tag], endpoint=get_position)
router.add_api_route(base_path + '/status', tags=[tag], endpoint=get_status)
router.add_api_route(base_path + '/move', tags=[tag], endpoint=move)
