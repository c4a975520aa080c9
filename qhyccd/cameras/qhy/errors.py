from .controls import QHYControlId


class QHYError(Exception):
    """
    Raised when a QHYCCD SDK call does not return QHYCCD_SUCCESS.

    :param error_code: The raw value returned by the SDK, when there is one
    :param control: The control involved, for parameter related errors
    """

    description = "QHYCCD SDK error"

    def __init__(self, error_code: int | None = None, control: QHYControlId | None = None):
        self.error_code = error_code
        self.control = control
        super().__init__(str(self))

    def __str__(self) -> str:
        ret = f"Error {self.description}"
        if self.control is not None:
            ret += f" ({self.control.name})"
        if self.error_code is not None:
            ret += f", error code {self.error_code}"
        return ret


class SdkNotFoundError(QHYError):
    description = "loading the QHYCCD SDK library"


class InitSDKError(QHYError):
    description = "initializing QHYCCD SDK"


class CloseSDKError(QHYError):
    description = "closing QHYCCD SDK"


class GetSDKVersionError(QHYError):
    description = "getting QHYCCD SDK version"


class ScanQHYCCDError(QHYError):
    description = "scanning QHYCCD cameras"


class OpenCameraError(QHYError):
    description = "opening camera"


class GetCameraIdError(QHYError):
    description = "getting camera id"


class GetFirmwareVersionError(QHYError):
    description = "getting firmware version"


class SetReadoutModeError(QHYError):
    description = "setting camera read mode"


class SetStreamModeError(QHYError):
    description = "setting camera stream mode"


class InitCameraError(QHYError):
    description = "initializing camera"


class GetCCDInfoError(QHYError):
    description = "getting camera CCD info"


class SetBitModeError(QHYError):
    description = "setting camera bit mode"


class SetDebayerError(QHYError):
    description = "setting camera debayer on/off"


class SetBinModeError(QHYError):
    description = "setting camera bin mode"


class SetRoiError(QHYError):
    description = "setting camera sub frame"


class GetParameterError(QHYError):
    description = "getting camera parameter"


class SetParameterError(QHYError):
    description = "setting camera parameter"


class BeginLiveError(QHYError):
    description = "starting camera live mode"


class EndLiveError(QHYError):
    description = "stopping camera live mode"


class GetImageSizeError(QHYError):
    description = "getting image size"


class GetLiveFrameError(QHYError):
    description = "getting camera live frame"


class GetSingleFrameError(QHYError):
    description = "getting camera single frame"


class CloseCameraError(QHYError):
    description = "closing camera"


class GetOverscanAreaError(QHYError):
    description = "getting camera overscan area"


class GetEffectiveAreaError(QHYError):
    description = "getting camera effective area"


class IsControlAvailableError(QHYError):
    description = "determining support for camera feature"


class StartSingleFrameExposureError(QHYError):
    description = "starting single frame exposure"


class GetNumberOfReadoutModesError(QHYError):
    description = "getting camera number of read modes"


class GetReadoutModeNameError(QHYError):
    description = "getting camera read mode name"


class GetReadoutModeResolutionError(QHYError):
    description = "getting camera read mode resolution"


class GetReadoutModeError(QHYError):
    description = "getting camera readout mode"


class GetCameraModelError(QHYError):
    description = "getting model of camera"


class GetCameraTypeError(QHYError):
    description = "getting type of camera"


class GetExposureRemainingError(QHYError):
    description = "getting remaining exposure time"


class StopExposureError(QHYError):
    description = "stopping exposure"


class AbortExposureAndReadoutError(QHYError):
    description = "canceling exposure and readout"


class IsCfwPluggedInError(QHYError):
    description = "getting camera CFW plugged status"


class CameraNotOpenError(QHYError):
    description = "camera is not open"


class GetMinMaxStepError(QHYError):
    description = "getting camera min, max, step for parameter"


class GetCfwPositionError(QHYError):
    description = "getting filter wheel position"


class SetCfwPositionError(QHYError):
    description = "setting filter wheel position"


class OpenFilterWheelError(QHYError):
    description = "opening the filter wheel"


class CloseFilterWheelError(QHYError):
    description = "closing the filter wheel"


class GetNumberOfFiltersError(QHYError):
    description = "getting the number of filters"
