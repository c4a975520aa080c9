import os
import tempfile

import pytest

TEST_TOP_FOLDER = tempfile.mkdtemp(prefix='qhyccd-tests-')

TEST_CONFIG = f"""
[global]
top_folder = "{TEST_TOP_FOLDER}"
log_level = "INFO"
log_to_file = false

[sdk]
library = ""
simulated = true

[server]
host = "127.0.0.1"
port = 8000

[camera]
readout_mode = 0
gain = 10
offset = 20
usb_traffic = 50
exposure_duration = 0.01
depth = 16

[live]
frames = 3
max_attempts = 10
retry_delay = 0.0
fps_interval = 5.0

[cooler]
target_cool = -10.0
target_warm = 20.0
tolerance = 1.0
check_interval = 60.0

[simulation]
camera_id = "SIM-TEST"
model = "QHY-TEST"
filter_wheel_slots = 5
cooler = true
pattern = "flat"
noise_level = 0.0
width = 64
height = 48

[filter-wheel.SIM-TEST]
default = 0
0 = "L"
1 = "R"
2 = "G"
3 = "B"
4 = "Ha"
"""

# must happen before anything imports qhyccd.config.config
_config_file = os.path.join(TEST_TOP_FOLDER, 'qhyccd-test.toml')
with open(_config_file, 'w') as f:
    f.write(TEST_CONFIG)
os.environ['QHYCCD_CONFIG'] = _config_file

from qhyccd.cameras.qhy.models import CCDChipInfo  # noqa: E402
from qhyccd.cameras.qhy.sdk import Sdk, SdkFactory  # noqa: E402
from qhyccd.cameras.qhy.simulation.config import SimulatedCameraConfig  # noqa: E402
from qhyccd.cameras.qhy.simulation.image_generator import ImageGenerator  # noqa: E402

SIM_CAMERA_ID = 'SIM-TEST'


def small_camera_config(camera_id: str = SIM_CAMERA_ID, filter_wheel_slots: int = 5,
                        cooler: bool = True) -> SimulatedCameraConfig:
    """A 64x48 camera, small enough for fast frames"""
    chip_info = CCDChipInfo(
        chip_width=0.64,
        chip_height=0.48,
        image_width=64,
        image_height=48,
        pixel_width=10.0,
        pixel_height=10.0,
        bits_per_pixel=16,
    )
    config = SimulatedCameraConfig(
        id=camera_id,
        model='QHY-TEST',
        readout_modes=[('Standard', (64, 48)), ('Binned', (32, 24))],
    ).with_chip_info(chip_info).with_filter_wheel(filter_wheel_slots)
    if cooler:
        config.with_cooler()
    return config


def tear_down(sdk: Sdk):
    for cooler in sdk.coolers:
        cooler.abort()
    for wheel in sdk.filter_wheels:
        wheel.close()
    for camera in sdk.cameras:
        camera.close()
    sdk.release()


@pytest.fixture
def sim_config() -> SimulatedCameraConfig:
    return small_camera_config()


@pytest.fixture
def sdk(sim_config):
    sdk = Sdk.simulated([sim_config], generator=ImageGenerator(pattern='flat', noise_level=0.0))
    yield sdk
    tear_down(sdk)


@pytest.fixture
def camera(sdk):
    return sdk.cameras[0]


@pytest.fixture
def state(sdk):
    return sdk.backend.states[SIM_CAMERA_ID]


@pytest.fixture
def factory_reset():
    SdkFactory.set_instance(None)
    yield
    instance = SdkFactory._instance
    if instance is not None and not instance.released:
        tear_down(instance)
    SdkFactory.set_instance(None)
