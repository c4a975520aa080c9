import ctypes
import ctypes.util
import logging

from qhyccd.config.config import Config
from qhyccd.utils import init_log

from .errors import SdkNotFoundError

logger = logging.getLogger('qhyccd.sdk')
init_log(logger)

QHYCCD_SUCCESS = 0
QHYCCD_ERROR = 0xFFFFFFFF
QHYCCD_PARAM_ERROR = float(QHYCCD_ERROR)    # what GetQHYCCDParam returns on failure

STR_BUFFER_SIZE = 32

# Type aliases
qhyccd_handle_p = ctypes.c_void_p

# Prototypes for the STDCALL functions in use


def set_ctypes_prototypes(sdk):
    sdk.InitQHYCCDResource.argtypes = []
    sdk.InitQHYCCDResource.restype = ctypes.c_uint32

    sdk.ReleaseQHYCCDResource.argtypes = []
    sdk.ReleaseQHYCCDResource.restype = ctypes.c_uint32

    sdk.GetQHYCCDSDKVersion.argtypes = [
        ctypes.POINTER(ctypes.c_uint32),  # year
        ctypes.POINTER(ctypes.c_uint32),  # month
        ctypes.POINTER(ctypes.c_uint32),  # day
        ctypes.POINTER(ctypes.c_uint32),  # subday
    ]
    sdk.GetQHYCCDSDKVersion.restype = ctypes.c_uint32

    sdk.ScanQHYCCD.argtypes = []
    sdk.ScanQHYCCD.restype = ctypes.c_uint32

    sdk.GetQHYCCDId.argtypes = [ctypes.c_uint32, ctypes.c_char_p]
    sdk.GetQHYCCDId.restype = ctypes.c_uint32

    sdk.GetQHYCCDModel.argtypes = [ctypes.c_char_p, ctypes.c_char_p]
    sdk.GetQHYCCDModel.restype = ctypes.c_uint32

    sdk.OpenQHYCCD.argtypes = [ctypes.c_char_p]
    sdk.OpenQHYCCD.restype = qhyccd_handle_p

    sdk.CloseQHYCCD.argtypes = [qhyccd_handle_p]
    sdk.CloseQHYCCD.restype = ctypes.c_uint32

    sdk.SetQHYCCDStreamMode.argtypes = [qhyccd_handle_p, ctypes.c_uint8]
    sdk.SetQHYCCDStreamMode.restype = ctypes.c_uint32

    sdk.InitQHYCCD.argtypes = [qhyccd_handle_p]
    sdk.InitQHYCCD.restype = ctypes.c_uint32

    sdk.GetQHYCCDFWVersion.argtypes = [qhyccd_handle_p, ctypes.POINTER(ctypes.c_uint8)]
    sdk.GetQHYCCDFWVersion.restype = ctypes.c_uint32

    sdk.GetQHYCCDType.argtypes = [qhyccd_handle_p]
    sdk.GetQHYCCDType.restype = ctypes.c_uint32

    sdk.IsQHYCCDControlAvailable.argtypes = [qhyccd_handle_p, ctypes.c_int]
    sdk.IsQHYCCDControlAvailable.restype = ctypes.c_uint32

    sdk.SetQHYCCDParam.argtypes = [qhyccd_handle_p, ctypes.c_int, ctypes.c_double]
    sdk.SetQHYCCDParam.restype = ctypes.c_uint32

    sdk.GetQHYCCDParam.argtypes = [qhyccd_handle_p, ctypes.c_int]
    sdk.GetQHYCCDParam.restype = ctypes.c_double

    sdk.GetQHYCCDParamMinMaxStep.argtypes = [
        qhyccd_handle_p,
        ctypes.c_int,
        ctypes.POINTER(ctypes.c_double),
        ctypes.POINTER(ctypes.c_double),
        ctypes.POINTER(ctypes.c_double),
    ]
    sdk.GetQHYCCDParamMinMaxStep.restype = ctypes.c_uint32

    sdk.SetQHYCCDResolution.argtypes = [
        qhyccd_handle_p,
        ctypes.c_uint32,
        ctypes.c_uint32,
        ctypes.c_uint32,
        ctypes.c_uint32,
    ]
    sdk.SetQHYCCDResolution.restype = ctypes.c_uint32

    sdk.GetQHYCCDMemLength.argtypes = [qhyccd_handle_p]
    sdk.GetQHYCCDMemLength.restype = ctypes.c_uint32

    sdk.ExpQHYCCDSingleFrame.argtypes = [qhyccd_handle_p]
    sdk.ExpQHYCCDSingleFrame.restype = ctypes.c_uint32

    frame_argtypes = [
        qhyccd_handle_p,
        ctypes.POINTER(ctypes.c_uint32),  # w
        ctypes.POINTER(ctypes.c_uint32),  # h
        ctypes.POINTER(ctypes.c_uint32),  # bpp
        ctypes.POINTER(ctypes.c_uint32),  # channels
        ctypes.POINTER(ctypes.c_uint8),   # imgdata (dest buffer)
    ]
    sdk.GetQHYCCDSingleFrame.argtypes = frame_argtypes
    sdk.GetQHYCCDSingleFrame.restype = ctypes.c_uint32

    sdk.GetQHYCCDLiveFrame.argtypes = frame_argtypes
    sdk.GetQHYCCDLiveFrame.restype = ctypes.c_uint32

    sdk.CancelQHYCCDExposing.argtypes = [qhyccd_handle_p]
    sdk.CancelQHYCCDExposing.restype = ctypes.c_uint32

    sdk.CancelQHYCCDExposingAndReadout.argtypes = [qhyccd_handle_p]
    sdk.CancelQHYCCDExposingAndReadout.restype = ctypes.c_uint32

    sdk.GetQHYCCDExposureRemaining.argtypes = [qhyccd_handle_p]
    sdk.GetQHYCCDExposureRemaining.restype = ctypes.c_uint32

    sdk.BeginQHYCCDLive.argtypes = [qhyccd_handle_p]
    sdk.BeginQHYCCDLive.restype = ctypes.c_uint32

    sdk.StopQHYCCDLive.argtypes = [qhyccd_handle_p]
    sdk.StopQHYCCDLive.restype = ctypes.c_uint32

    sdk.SetQHYCCDBinMode.argtypes = [qhyccd_handle_p, ctypes.c_uint32, ctypes.c_uint32]
    sdk.SetQHYCCDBinMode.restype = ctypes.c_uint32

    sdk.SetQHYCCDBitsMode.argtypes = [qhyccd_handle_p, ctypes.c_uint32]
    sdk.SetQHYCCDBitsMode.restype = ctypes.c_uint32

    sdk.SetQHYCCDDebayerOnOff.argtypes = [qhyccd_handle_p, ctypes.c_bool]
    sdk.SetQHYCCDDebayerOnOff.restype = ctypes.c_uint32

    sdk.IsQHYCCDCFWPlugged.argtypes = [qhyccd_handle_p]
    sdk.IsQHYCCDCFWPlugged.restype = ctypes.c_uint32

    sdk.GetQHYCCDChipInfo.argtypes = [
        qhyccd_handle_p,
        ctypes.POINTER(ctypes.c_double),  # chip width
        ctypes.POINTER(ctypes.c_double),  # chip height
        ctypes.POINTER(ctypes.c_uint32),  # image width
        ctypes.POINTER(ctypes.c_uint32),  # image height
        ctypes.POINTER(ctypes.c_double),  # pixel width
        ctypes.POINTER(ctypes.c_double),  # pixel height
        ctypes.POINTER(ctypes.c_uint32),  # bpp
    ]
    sdk.GetQHYCCDChipInfo.restype = ctypes.c_uint32

    area_argtypes = [
        qhyccd_handle_p,
        ctypes.POINTER(ctypes.c_uint32),  # start x
        ctypes.POINTER(ctypes.c_uint32),  # start y
        ctypes.POINTER(ctypes.c_uint32),  # width
        ctypes.POINTER(ctypes.c_uint32),  # height
    ]
    sdk.GetQHYCCDEffectiveArea.argtypes = area_argtypes
    sdk.GetQHYCCDEffectiveArea.restype = ctypes.c_uint32

    sdk.GetQHYCCDOverScanArea.argtypes = area_argtypes
    sdk.GetQHYCCDOverScanArea.restype = ctypes.c_uint32

    sdk.SetQHYCCDReadMode.argtypes = [qhyccd_handle_p, ctypes.c_uint32]
    sdk.SetQHYCCDReadMode.restype = ctypes.c_uint32

    sdk.GetQHYCCDReadMode.argtypes = [qhyccd_handle_p, ctypes.POINTER(ctypes.c_uint32)]
    sdk.GetQHYCCDReadMode.restype = ctypes.c_uint32

    sdk.GetQHYCCDNumberOfReadModes.argtypes = [qhyccd_handle_p, ctypes.POINTER(ctypes.c_uint32)]
    sdk.GetQHYCCDNumberOfReadModes.restype = ctypes.c_uint32

    sdk.GetQHYCCDReadModeName.argtypes = [
        qhyccd_handle_p,
        ctypes.c_uint32,
        ctypes.c_char_p,
    ]
    sdk.GetQHYCCDReadModeName.restype = ctypes.c_uint32

    sdk.GetQHYCCDReadModeResolution.argtypes = [
        qhyccd_handle_p,
        ctypes.c_uint32,
        ctypes.POINTER(ctypes.c_uint32),  # width
        ctypes.POINTER(ctypes.c_uint32),  # height
    ]
    sdk.GetQHYCCDReadModeResolution.restype = ctypes.c_uint32


def load_library(path: str | None = None) -> ctypes.CDLL:
    """
    Loads the QHYCCD SDK shared library and declares the prototypes of the functions we use.

    :param path: Explicit path to the library.  When None, the '[sdk] library' configuration
     entry is used and, when that is empty, the system library path is searched for 'qhyccd'.
    """
    if not path:
        path = Config().get_sdk().library
    if not path:
        path = ctypes.util.find_library('qhyccd')
    if not path:
        err = SdkNotFoundError()
        logger.error(f"{err}: 'qhyccd' not found in the library path and not configured in '[sdk] library'")
        raise err

    try:
        sdk = ctypes.CDLL(path)
    except OSError as e:
        logger.error(f"could not load '{path}' ({e})")
        raise SdkNotFoundError() from e

    set_ctypes_prototypes(sdk)
    logger.info(f"loaded QHYCCD SDK from '{path}'")
    return sdk
