from enum import IntEnum

from pydantic import BaseModel


class QHYControlId(IntEnum):
    """The CONTROL_ID values of the QHYCCD SDK (qhyccdstruct.h)."""

    CONTROL_BRIGHTNESS = 0
    CONTROL_CONTRAST = 1
    CONTROL_WBR = 2
    CONTROL_WBB = 3
    CONTROL_WBG = 4
    CONTROL_GAMMA = 5
    CONTROL_GAIN = 6
    CONTROL_OFFSET = 7
    CONTROL_EXPOSURE = 8
    CONTROL_SPEED = 9
    CONTROL_TRANSFERBIT = 10
    CONTROL_CHANNELS = 11
    CONTROL_USBTRAFFIC = 12
    CONTROL_ROWNOISERE = 13
    CONTROL_CURTEMP = 14
    CONTROL_CURPWM = 15
    CONTROL_MANULPWM = 16
    CONTROL_CFWPORT = 17
    CONTROL_COOLER = 18
    CONTROL_ST4PORT = 19
    CAM_COLOR = 20
    CAM_BIN1X1MODE = 21
    CAM_BIN2X2MODE = 22
    CAM_BIN3X3MODE = 23
    CAM_BIN4X4MODE = 24
    CAM_MECHANICALSHUTTER = 25
    CAM_TRIGER_INTERFACE = 26
    CAM_TECOVERPROTECT_INTERFACE = 27
    CAM_SINGNALCLAMP_INTERFACE = 28
    CAM_FINETONE_INTERFACE = 29
    CAM_SHUTTERMOTORHEATING_INTERFACE = 30
    CAM_CALIBRATEFPN_INTERFACE = 31
    CAM_CHIPTEMPERATURESENSOR_INTERFACE = 32
    CAM_USBREADOUTSLOWEST_INTERFACE = 33
    CAM_8BITS = 34
    CAM_16BITS = 35
    CAM_GPS = 36
    CAM_IGNOREOVERSCAN_INTERFACE = 37
    QHYCCD_3A_AUTOWHITEBALANCE = 38
    QHYCCD_3A_AUTOEXPOSURE = 39
    QHYCCD_3A_AUTOFOCUS = 40
    CONTROL_AMPV = 41
    CONTROL_VCAM = 42
    CAM_VIEW_MODE = 43
    CONTROL_CFWSLOTSNUM = 44
    IS_EXPOSING_DONE = 45
    ScreenStretchB = 46
    ScreenStretchW = 47
    CONTROL_DDR = 48
    CAM_LIGHT_PERFORMANCE_MODE = 49
    CAM_QHY5II_GUIDE_MODE = 50
    DDR_BUFFER_CAPACITY = 51
    DDR_BUFFER_READ_THRESHOLD = 52
    DefaultGain = 53
    DefaultOffset = 54
    OutputDataActualBits = 55
    OutputDataAlignment = 56
    CAM_SINGLEFRAMEMODE = 57
    CAM_LIVEVIDEOMODE = 58
    CAM_IS_COLOR = 59
    hasHardwareFrameCounter = 60
    CONTROL_MAX_ID_Error = 61
    CAM_HUMIDITY = 62
    CAM_PRESSURE = 63
    CONTROL_VACUUM_PUMP = 64
    CONTROL_SensorChamberCycle_PUMP = 65
    CAM_32BITS = 66
    CAM_Sensor_ULVO_Status = 67
    CAM_SensorPhaseReTrain = 68
    CAM_InitConfigFromFlash = 69
    CAM_TRIGER_MODE = 70
    CAM_TRIGER_OUT = 71
    CAM_BURST_MODE = 72
    CAM_SPEAKER_LED_ALARM = 73
    CAM_WATCH_DOG_FPGA = 74
    CAM_BIN6X6MODE = 75
    CAM_BIN8X8MODE = 76
    CAM_GlobalSensorGPSLED = 77
    CONTROL_ImgProc = 78
    CONTROL_RemoveRBI = 79
    CONTROL_GlobalReset = 80
    CONTROL_FrameDetect = 81
    CAM_GainDBConversion = 82
    CAM_CurveSystemGain = 83
    CAM_CurveFullWell = 84
    CAM_CurveReadoutNoise = 85
    CAM_UseAverageBinning = 86
    CONTROL_OUTSIDE_PUMP_V2 = 87
    CONTROL_AUTOEXPOSURE = 88
    CONTROL_AUTOEXPTargetBrightness = 89
    CONTROL_AUTOEXPSampleArea = 90
    CONTROL_AUTOEXPexpMaxMS = 91
    CONTROL_AUTOEXPgainMax = 92
    CONTROL_Error_Led = 93
    CONTROL_AUTOWHITEBALANCE = 1024
    CONTROL_ImageStabilization = 1030
    CONTROL_GAINdB = 1031
    CONTROL_DPC = 1032
    CONTROL_DPC_value = 1033
    CONTROL_HDR = 1034
    CONTROL_HDR_L_k = 1035
    CONTROL_HDR_L_b = 1036
    CONTROL_HDR_x = 1037
    CONTROL_HDR_showKB = 1038


class QHYControlRange(BaseModel):
    min: float
    max: float
    step: float


class QHYControl(BaseModel):
    id: QHYControlId
    name: str
    range: QHYControlRange | None = None


#
# The controls reported by a QHY600U3 camera, with (min, max, step) where the SDK reports one.
# Produced with 'python -m qhyccd.cameras.qhy.demo controls'.
#
QHY600_CONTROL_RANGES: dict[QHYControlId, tuple[float, float, float] | None] = {
    QHYControlId.CONTROL_BRIGHTNESS: (-1.0, 1.0, 0.1),
    QHYControlId.CONTROL_CONTRAST: (-1.0, 1.0, 0.1),
    QHYControlId.CONTROL_GAMMA: (0.0, 2.0, 0.1),
    QHYControlId.CONTROL_GAIN: (0.0, 200.0, 1.0),
    QHYControlId.CONTROL_OFFSET: (0.0, 255.0, 1.0),
    QHYControlId.CONTROL_EXPOSURE: (1.0, 3600000000.0, 1.0),
    QHYControlId.CONTROL_TRANSFERBIT: (8.0, 16.0, 8.0),
    QHYControlId.CONTROL_USBTRAFFIC: (0.0, 60.0, 1.0),
    QHYControlId.CONTROL_CURTEMP: (-50.0, 50.0, 0.5),
    QHYControlId.CONTROL_CURPWM: (0.0, 255.0, 1.0),
    QHYControlId.CONTROL_MANULPWM: (0.0, 255.0, 1.0),
    QHYControlId.CONTROL_CFWPORT: None,
    QHYControlId.CONTROL_COOLER: (-50.0, 50.0, 0.5),
    QHYControlId.CAM_BIN1X1MODE: None,
    QHYControlId.CAM_BIN2X2MODE: None,
    QHYControlId.CAM_BIN3X3MODE: None,
    QHYControlId.CAM_BIN4X4MODE: None,
    QHYControlId.CAM_TRIGER_INTERFACE: None,
    QHYControlId.CAM_8BITS: None,
    QHYControlId.CAM_16BITS: None,
    QHYControlId.CAM_GPS: None,
    QHYControlId.CONTROL_VCAM: None,
    QHYControlId.CONTROL_CFWSLOTSNUM: None,
    QHYControlId.CAM_SINGLEFRAMEMODE: None,
    QHYControlId.CAM_LIVEVIDEOMODE: None,
    QHYControlId.CAM_HUMIDITY: None,
    QHYControlId.CAM_PRESSURE: None,
    QHYControlId.CAM_32BITS: None,
    QHYControlId.CAM_Sensor_ULVO_Status: None,
    QHYControlId.CAM_InitConfigFromFlash: None,
    QHYControlId.CAM_TRIGER_MODE: (0.0, 1.0, 1.0),
    QHYControlId.CAM_TRIGER_OUT: None,
    QHYControlId.CAM_BURST_MODE: None,
    QHYControlId.CONTROL_ImgProc: None,
    QHYControlId.CONTROL_RemoveRBI: None,
    QHYControlId.CAM_GainDBConversion: None,
    QHYControlId.CONTROL_AUTOEXPOSURE: (0.0, 3.0, 1.0),
    QHYControlId.CONTROL_AUTOEXPTargetBrightness: (15.0, 240.0, 1.0),
    QHYControlId.CONTROL_AUTOEXPSampleArea: (0.0, 3.0, 1.0),
    QHYControlId.CONTROL_AUTOEXPexpMaxMS: (1.0, 5000.0, 1.0),
    QHYControlId.CONTROL_AUTOEXPgainMax: (0.0, 200.0, 1.0),
}

qhy_controls: list[QHYControl] = [
    QHYControl(
        id=control_id,
        name=control_id.name,
        range=QHYControlRange(min=r[0], max=r[1], step=r[2]) if r is not None else None,
    )
    for control_id, r in QHY600_CONTROL_RANGES.items()
]


def control_by_id(control_id: QHYControlId) -> QHYControl | None:
    found = [ctrl for ctrl in qhy_controls if ctrl.id == control_id]
    return found[0] if found else None
