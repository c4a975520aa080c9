from pydantic import BaseModel, Field

from qhyccd.cameras.qhy.controls import QHY600_CONTROL_RANGES, QHYControlId
from qhyccd.cameras.qhy.models import BayerMode, CCDChipArea, CCDChipInfo

ControlRange = tuple[float, float, float]


def default_controls() -> dict[QHYControlId, ControlRange]:
    return {
        QHYControlId.CONTROL_GAIN: (0.0, 100.0, 1.0),
        QHYControlId.CONTROL_OFFSET: (0.0, 255.0, 1.0),
        QHYControlId.CONTROL_EXPOSURE: (1.0, 3600_000_000.0, 1.0),     # 1us to 1h
        QHYControlId.CONTROL_SPEED: (0.0, 2.0, 1.0),
        QHYControlId.CONTROL_USBTRAFFIC: (0.0, 255.0, 1.0),
        QHYControlId.CONTROL_TRANSFERBIT: (8.0, 16.0, 8.0),
        QHYControlId.CAM_BIN1X1MODE: (1.0, 1.0, 1.0),
        QHYControlId.CAM_BIN2X2MODE: (1.0, 1.0, 1.0),
        QHYControlId.CAM_SINGLEFRAMEMODE: (1.0, 1.0, 1.0),
        QHYControlId.CAM_LIVEVIDEOMODE: (1.0, 1.0, 1.0),
        QHYControlId.CAM_8BITS: (1.0, 1.0, 1.0),
        QHYControlId.CAM_16BITS: (1.0, 1.0, 1.0),
    }


def default_chip_info() -> CCDChipInfo:
    return CCDChipInfo(
        chip_width=7.4,
        chip_height=5.0,
        image_width=3072,
        image_height=2048,
        pixel_width=2.4,
        pixel_height=2.4,
        bits_per_pixel=16,
    )


class SimulatedCameraConfig(BaseModel):
    """
    What a simulated camera looks like to the SDK user.  The defaults resemble a QHY178M.

    The with_*() builders modify the configuration in place and return it, so they chain:

        config = SimulatedCameraConfig().with_filter_wheel(5).with_cooler()
    """
    id: str = 'SIM-001'
    model: str = 'QHY-SIMULATED'
    chip_info: CCDChipInfo = Field(default_factory=default_chip_info)
    effective_area: CCDChipArea = CCDChipArea(width=3072, height=2048)
    overscan_area: CCDChipArea = CCDChipArea(width=3072, height=2048)
    supported_controls: dict[QHYControlId, ControlRange] = Field(default_factory=default_controls)
    filter_wheel_slots: int = 0
    has_cooler: bool = False
    bayer_mode: BayerMode | None = None
    readout_modes: list[tuple[str, tuple[int, int]]] = [('Standard', (3072, 2048))]
    camera_type: int = 4010
    firmware_version: tuple[int, int, int] = (2024, 1, 1)   # year, month, day

    def with_id(self, camera_id: str) -> 'SimulatedCameraConfig':
        self.id = camera_id
        return self

    def with_model(self, model: str) -> 'SimulatedCameraConfig':
        self.model = model
        return self

    def with_filter_wheel(self, slots: int) -> 'SimulatedCameraConfig':
        self.filter_wheel_slots = slots
        if slots > 0:
            self.supported_controls[QHYControlId.CONTROL_CFWPORT] = (0.0, float(slots - 1), 1.0)
            self.supported_controls[QHYControlId.CONTROL_CFWSLOTSNUM] = (float(slots), float(slots), 0.0)
        return self

    def with_color(self, bayer_mode: BayerMode) -> 'SimulatedCameraConfig':
        self.bayer_mode = bayer_mode
        self.supported_controls[QHYControlId.CAM_COLOR] = (float(bayer_mode), float(bayer_mode), 0.0)
        for control in (QHYControlId.CONTROL_WBR, QHYControlId.CONTROL_WBB, QHYControlId.CONTROL_WBG):
            self.supported_controls[control] = (0.0, 255.0, 1.0)
        return self

    def with_cooler(self) -> 'SimulatedCameraConfig':
        self.has_cooler = True
        self.supported_controls[QHYControlId.CONTROL_COOLER] = (-40.0, 30.0, 0.1)
        self.supported_controls[QHYControlId.CONTROL_CURTEMP] = (-40.0, 50.0, 0.1)
        self.supported_controls[QHYControlId.CONTROL_CURPWM] = (0.0, 255.0, 1.0)
        self.supported_controls[QHYControlId.CONTROL_MANULPWM] = (0.0, 255.0, 1.0)
        return self

    def with_chip_info(self, chip_info: CCDChipInfo) -> 'SimulatedCameraConfig':
        """Also resets the effective and overscan areas to the full chip"""
        self.chip_info = chip_info
        self.effective_area = CCDChipArea(width=chip_info.image_width, height=chip_info.image_height)
        self.overscan_area = self.effective_area.model_copy()
        return self

    def with_readout_mode(self, name: str, width: int, height: int) -> 'SimulatedCameraConfig':
        self.readout_modes.append((name, (width, height)))
        return self

    def with_firmware_version(self, year: int, month: int, day: int) -> 'SimulatedCameraConfig':
        self.firmware_version = (year, month, day)
        return self

    def with_control(self, control: QHYControlId, lo: float, hi: float, step: float) -> 'SimulatedCameraConfig':
        self.supported_controls[control] = (lo, hi, step)
        return self

    def firmware_buffer(self) -> bytes:
        """
        The firmware version as GetQHYCCDFWVersion reports it: the high nibble of the first byte
         is the year (past 2016, or 2010..2015), the low nibble the month, the second byte the day.
        """
        year, month, day = self.firmware_version
        nibble = year - 2000
        if nibble >= 0x10:
            nibble -= 0x10
        return bytes([(nibble & 0x0F) << 4 | (month & 0x0F), day & 0xFF]) + bytes(30)

    @classmethod
    def qhy600(cls, camera_id: str = 'SIM-QHY600M', filter_wheel_slots: int = 0) -> 'SimulatedCameraConfig':
        """A cooled QHY600M, with the control ranges measured on a real one"""
        chip_info = CCDChipInfo(
            chip_width=36.0,
            chip_height=24.0,
            image_width=9600,
            image_height=6422,
            pixel_width=3.76,
            pixel_height=3.76,
            bits_per_pixel=16,
        )
        config = cls(id=camera_id, model='QHY600M-Simulated', readout_modes=[]).with_chip_info(chip_info)
        config.supported_controls = {
            control: r if r is not None else (1.0, 1.0, 1.0)
            for control, r in QHY600_CONTROL_RANGES.items()
            if control not in (QHYControlId.CONTROL_CFWPORT, QHYControlId.CONTROL_CFWSLOTSNUM)
        }
        config.has_cooler = True
        config.with_filter_wheel(filter_wheel_slots)
        for name in ('Photographic DSO 16BIT', 'High Gain Mode 16BIT', 'Extend Fullwell 2CMSIT', 'Extend Fullwell'):
            config.with_readout_mode(name, chip_info.image_width, chip_info.image_height)
        return config
