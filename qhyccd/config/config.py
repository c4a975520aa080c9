import datetime
import os

import tomlkit
from pydantic import BaseModel


class GlobalConfig(BaseModel):
    top_folder: str = '~/qhyccd'
    log_level: str = 'DEBUG'
    log_to_file: bool = True


class SdkConfig(BaseModel):
    library: str | None = None
    simulated: bool = False


class ServerConfig(BaseModel):
    host: str = '127.0.0.1'
    port: int = 8000


class LiveConfig(BaseModel):
    frames: int = 10
    max_attempts: int = 1000
    retry_delay: float = 0.1        # seconds between failed live-frame fetches
    fps_interval: float = 5.0       # seconds between frame-rate reports


class CoolerConfig(BaseModel):
    target_cool: float = -10.0
    target_warm: float = 20.0
    tolerance: float = 1.0
    check_interval: float = 1.0


class SimulationConfig(BaseModel):
    camera_id: str = 'SIM-QHY178M'
    model: str = 'QHY178M-Simulated'
    filter_wheel_slots: int = 7
    cooler: bool = True
    pattern: str = 'gradient'
    noise_level: float = 0.05
    width: int | None = None
    height: int | None = None


class Config:
    file: str
    toml: tomlkit.TOMLDocument = None
    _instance = None
    _initialized: bool = False

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self.file = os.environ.get('QHYCCD_CONFIG', os.path.join(os.path.dirname(__file__), 'qhyccd.toml'))
        self.toml = tomlkit.TOMLDocument()
        self.reload()
        self._initialized = True

    def reload(self):
        self.toml.clear()
        with open(self.file, 'r') as f:
            self.toml = tomlkit.load(f)

    def save(self):
        self.toml['global']['saved_at'] = datetime.datetime.now()
        with open(self.file, 'w') as f:
            tomlkit.dump(self.toml, f)

    def section(self, name: str) -> dict:
        if name not in self.toml:
            return {}
        return self.toml[name].unwrap()

    def get_global(self) -> GlobalConfig:
        return GlobalConfig(**self.section('global'))

    def get_sdk(self) -> SdkConfig:
        return SdkConfig(**self.section('sdk'))

    def get_server(self) -> ServerConfig:
        return ServerConfig(**self.section('server'))

    def get_live(self) -> LiveConfig:
        return LiveConfig(**self.section('live'))

    def get_cooler(self) -> CoolerConfig:
        return CoolerConfig(**self.section('cooler'))

    def get_simulation(self) -> SimulationConfig:
        return SimulationConfig(**self.section('simulation'))

    def get_camera_defaults(self) -> dict:
        return self.section('camera')

    def get_filter_wheel(self, camera_id: str) -> dict:
        """
        The position names (and optional default position) of the filter wheel attached
         to the camera with the given id, e.g.:

            [filter-wheel."QHY600M-1234"]
            default = 0
            0 = "L"
            1 = "R"
        """
        wheels = self.section('filter-wheel')
        return wheels[camera_id] if camera_id in wheels else {}
