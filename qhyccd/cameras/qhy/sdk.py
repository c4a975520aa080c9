import logging
from threading import Lock
from typing import List

from fastapi import APIRouter

from qhyccd.config.config import Config, SimulationConfig
from qhyccd.cooling.cooler import Cooler
from qhyccd.filter_wheel.wheel import FilterWheel
from qhyccd.utils import BASE_QHYCCD_PATH, Component, init_log

from .backend import QHYBackend, SdkBackend
from .camera import Camera
from .controls import QHYControlId
from .errors import QHYError
from .models import QHYCameraSettingsModel, SDKVersion
from .simulation.backend import SimulatedBackend
from .simulation.config import SimulatedCameraConfig
from .simulation.image_generator import ImageGenerator

logger = logging.getLogger('qhyccd.sdk')
init_log(logger)


class Sdk(Component):
    """
    The QHYCCD SDK: initializes the library, finds the attached cameras and the filter
     wheels and coolers they drive.

    Release the SDK exactly once, either with release(), shutdown() or by using it as
     a context manager:

        with Sdk() as sdk:
            for camera in sdk.cameras:
                ...
    """

    def __init__(self, backend: QHYBackend | None = None):
        Component.__init__(self)
        self.logger = logger
        self.backend = backend if backend is not None else SdkBackend()
        self._cameras: List[Camera] = []
        self._filter_wheels: List[FilterWheel] = []
        self._coolers: List[Cooler] = []
        self._released = False

        self.backend.init_resource()
        try:
            self.scan()
        except Exception:
            self.release()
            raise

    @classmethod
    def simulated(cls, configs: List[SimulatedCameraConfig] | None = None,
                  generator: ImageGenerator | None = None) -> 'Sdk':
        sdk = cls(SimulatedBackend(generator=generator))
        for config in configs or []:
            sdk.add_simulated_camera(config)
        return sdk

    def __repr__(self):
        return f"<Sdk>(simulated={self.backend.simulated}, cameras={[c.id for c in self._cameras]})"

    def __enter__(self) -> 'Sdk':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    @property
    def name(self) -> str:
        return 'qhyccd-sdk'

    @property
    def cameras(self) -> List[Camera]:
        return self._cameras

    @property
    def filter_wheels(self) -> List[FilterWheel]:
        return self._filter_wheels

    @property
    def coolers(self) -> List[Cooler]:
        return self._coolers

    @property
    def released(self) -> bool:
        return self._released

    def camera_by_id(self, camera_id: str) -> Camera | None:
        for camera in self._cameras:
            if camera.id == camera_id:
                return camera
        return None

    def scan(self) -> List[Camera]:
        """
        Looks for cameras not yet known.  Each new camera is briefly opened to find out whether
         a filter wheel is plugged into it and whether it has a cooler.
        :return: The newly found cameras
        """
        found = []
        number_of_cameras = self.backend.scan()
        self.info(f"found {number_of_cameras} camera(s)")
        for index in range(number_of_cameras):
            try:
                camera_id = self.backend.get_id(index)
                if self.camera_by_id(camera_id) is not None:
                    continue
                found.append(self._add_camera(Camera(camera_id, self.backend)))
            except QHYError as ex:
                self.error(f"skipping camera #{index}: {ex}")
        return found

    def _add_camera(self, camera: Camera) -> Camera:
        camera.open()
        try:
            camera.get_model()
            has_wheel = camera.is_cfw_plugged_in()
            has_cooler = camera.is_control_available(QHYControlId.CONTROL_COOLER) is not None
        finally:
            camera.close()
        self._cameras.append(camera)
        if has_wheel:
            self._filter_wheels.append(FilterWheel(camera))
        if has_cooler:
            self._coolers.append(Cooler(camera))
        self.info(f"added camera '{camera.id}' (model='{camera.model}')")
        return camera

    def add_simulated_camera(self, config: SimulatedCameraConfig) -> Camera:
        if not isinstance(self.backend, SimulatedBackend):
            raise TypeError(f"cannot add a simulated camera to a {self.backend.__class__.__name__}")
        self.backend.add_camera(config)
        return self._add_camera(Camera(config.id, self.backend))

    def version(self) -> SDKVersion:
        return self.backend.get_sdk_version()

    def release(self):
        if self._released:
            return
        self.backend.release_resource()
        self._released = True
        self.info("released")

    #
    # Component
    #
    def startup(self):
        for component in self._cameras + self._filter_wheels + self._coolers:
            component.startup()

    def shutdown(self):
        for component in self._coolers + self._filter_wheels + self._cameras:
            component.shutdown()
        self.release()

    def abort(self):
        for component in self._coolers + self._filter_wheels + self._cameras:
            component.abort()

    def status(self) -> dict:
        return {
            'simulated': self.backend.simulated,
            'released': self._released,
            'version': str(self.version()) if not self._released else None,
            'operational': self.operational,
            'why_not_operational': self.why_not_operational,
            'cameras': [c.id for c in self._cameras],
            'filter_wheels': [w.id for w in self._filter_wheels],
            'coolers': [c.camera.id for c in self._coolers],
        }

    @property
    def operational(self) -> bool:
        return not self._released and len(self._cameras) > 0

    @property
    def why_not_operational(self) -> List[str]:
        ret = []
        if self._released:
            ret.append(f"{self.name}: released")
        elif not self._cameras:
            ret.append(f"{self.name}: no cameras")
        return ret


def make_simulated_camera_config(conf: SimulationConfig) -> SimulatedCameraConfig:
    config = SimulatedCameraConfig(id=conf.camera_id, model=conf.model).with_filter_wheel(conf.filter_wheel_slots)
    if conf.cooler:
        config.with_cooler()
    if conf.width is not None and conf.height is not None:
        chip_info = config.chip_info.model_copy(update={'image_width': conf.width, 'image_height': conf.height})
        config.with_chip_info(chip_info)
        config.readout_modes = [('Standard', (conf.width, conf.height))]
    return config


def make_sdk(simulated: bool | None = None) -> Sdk:
    """
    Builds an Sdk according to the configuration.
    :param simulated: Overrides '[sdk] simulated'
    """
    cfg = Config()
    if simulated is None:
        simulated = cfg.get_sdk().simulated

    if not simulated:
        return Sdk()

    sim_conf = cfg.get_simulation()
    generator = ImageGenerator(pattern=sim_conf.pattern, noise_level=sim_conf.noise_level)
    return Sdk.simulated([make_simulated_camera_config(sim_conf)], generator=generator)


class SdkFactory:
    _instance: Sdk | None = None
    _lock = Lock()

    @staticmethod
    def get_instance() -> Sdk:
        with SdkFactory._lock:
            if SdkFactory._instance is None or SdkFactory._instance.released:
                SdkFactory._instance = make_sdk()
        return SdkFactory._instance

    @staticmethod
    def set_instance(sdk: Sdk | None):
        with SdkFactory._lock:
            SdkFactory._instance = sdk


def startup():
    SdkFactory.get_instance().startup()


def shutdown():
    SdkFactory.get_instance().shutdown()


def abort():
    SdkFactory.get_instance().abort()


def get_version():
    return str(SdkFactory.get_instance().version())


def list_cameras():
    ret = {}
    for camera in SdkFactory.get_instance().cameras:
        ret[camera.id] = {
            'model': camera.model,
            'open': camera.is_open,
        }
    return ret


def get_sdk_status():
    return SdkFactory.get_instance().status()


def get_camera_status(camera_id: str):
    camera = SdkFactory.get_instance().camera_by_id(camera_id)
    if camera is None:
        return {'Error': f"no camera '{camera_id}'"}
    return camera.status()


def expose(camera_id: str, settings: QHYCameraSettingsModel):
    from qhyccd.acquisition import expose_and_save

    camera = SdkFactory.get_instance().camera_by_id(camera_id)
    if camera is None:
        return {'Error': f"no camera '{camera_id}'"}
    path = expose_and_save(camera, settings)
    return {'image_path': path}


def abort_camera(camera_id: str):
    camera = SdkFactory.get_instance().camera_by_id(camera_id)
    if camera is None:
        return {'Error': f"no camera '{camera_id}'"}
    camera.abort()


def get_chip_info(camera_id: str):
    camera = SdkFactory.get_instance().camera_by_id(camera_id)
    if camera is None:
        return {'Error': f"no camera '{camera_id}'"}
    return camera.get_ccd_info()


sdk_base_path = BASE_QHYCCD_PATH + 'sdk'
sdk_tag = 'SDK'
camera_base_path = BASE_QHYCCD_PATH + 'camera'
camera_tag = 'Cameras'
router = APIRouter()

router.add_api_route(sdk_base_path + '/version', tags=[sdk_tag], endpoint=get_version)
router.add_api_route(sdk_base_path + '/cameras', tags=[sdk_tag], endpoint=list_cameras)
router.add_api_route(sdk_base_path + '/status', tags=[sdk_tag], endpoint=get_sdk_status)
router.add_api_route(sdk_base_path + '/startup', tags=[sdk_tag], endpoint=startup)
router.add_api_route(sdk_base_path + '/shutdown', tags=[sdk_tag], endpoint=shutdown)
router.add_api_route(sdk_base_path + '/abort', tags=[sdk_tag], endpoint=abort)

router.add_api_route(camera_base_path + '/status', tags=[camera_tag], endpoint=get_camera_status)
router.add_api_route(camera_base_path + '/chip_info', tags=[camera_tag], endpoint=get_chip_info)
router.add_api_route(camera_base_path + '/expose', tags=[camera_tag], endpoint=expose, methods=['PUT'])
router.add_api_route(camera_base_path + '/abort', tags=[camera_tag], endpoint=abort_camera)
