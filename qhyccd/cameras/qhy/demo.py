"""
Exercises a QHYCCD camera from the command line, on real hardware or simulated.

    python -m qhyccd.cameras.qhy.demo info
    python -m qhyccd.cameras.qhy.demo --simulated single --exposure 0.5 --output /tmp/frame.fits
    python -m qhyccd.cameras.qhy.demo live --frames 100
    python -m qhyccd.cameras.qhy.demo wheel --position Ha
    python -m qhyccd.cameras.qhy.demo controls
"""
import argparse
import os
import sys
from typing import List

from qhyccd.acquisition import expose_and_save, live_frames, save_image
from qhyccd.config.config import Config

from .camera import Camera
from .controls import QHYControlId
from .errors import QHYError
from .models import ImageData, QHYCameraSettingsModel
from .sdk import Sdk, make_sdk


def make_settings(args: argparse.Namespace) -> QHYCameraSettingsModel:
    """The '[camera]' configuration defaults, overridden by command line arguments"""
    settings = QHYCameraSettingsModel(**Config().get_camera_defaults())
    overrides = {}
    for field in ('readout_mode', 'gain', 'offset', 'exposure_duration'):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    if getattr(args, 'output', None):
        overrides['image_path'] = args.output
    if getattr(args, 'binning', None):
        overrides['binning'] = {'x': args.binning, 'y': args.binning}
    return settings.model_validate(settings.model_dump() | overrides)


def pick_camera(sdk: Sdk, camera_id: str | None) -> Camera:
    if not sdk.cameras:
        raise SystemExit("No QHYCCD cameras found")
    if camera_id is None:
        return sdk.cameras[0]
    camera = sdk.camera_by_id(camera_id)
    if camera is None:
        raise SystemExit(f"No camera '{camera_id}', known cameras: {[c.id for c in sdk.cameras]}")
    return camera


def cmd_info(sdk: Sdk, args: argparse.Namespace):
    print(f"SDK version: {sdk.version()}")
    print(f"Found {len(sdk.cameras)} camera(s)")
    for camera in sdk.cameras:
        camera.open()
        try:
            print(f"\nCamera '{camera.id}' (model: {camera.get_model()})")
            print(f"  {camera.get_firmware_version()}")
            chip = camera.get_ccd_info()
            print(f"  Chip: {chip.chip_width} x {chip.chip_height} mm, "
                  f"{chip.image_width} x {chip.image_height} pixels, "
                  f"pixel {chip.pixel_width} x {chip.pixel_height} um, {chip.bits_per_pixel} bpp")
            print(f"  Effective area: {camera.get_effective_area().model_dump()}")
            print(f"  Overscan area:  {camera.get_overscan_area().model_dump()}")
            for mode in camera.get_readout_modes():
                print(f"  Readout mode {mode.id}: '{mode.name}' {mode.resolution}")
            print(f"  Filter wheel plugged in: {camera.is_cfw_plugged_in()}")
        finally:
            camera.close()


def cmd_single(sdk: Sdk, args: argparse.Namespace):
    camera = pick_camera(sdk, args.camera)
    path = expose_and_save(camera, make_settings(args))
    print(f"Saved '{path}'")


def cmd_live(sdk: Sdk, args: argparse.Namespace):
    camera = pick_camera(sdk, args.camera)
    saved: List[str] = []

    def on_frame(image: ImageData):
        if args.save_dir:
            path = os.path.join(args.save_dir, f"live-{camera.id}-{len(saved):04d}.png")
            saved.append(save_image(image, path))

    images = live_frames(camera, make_settings(args), frames=args.frames, callback=on_frame)
    print(f"Got {len(images)} of {args.frames} frame(s)")
    if saved:
        print(f"Saved {len(saved)} frame(s) in '{args.save_dir}'")


def cmd_wheel(sdk: Sdk, args: argparse.Namespace):
    camera = pick_camera(sdk, args.camera)
    wheel = next((w for w in sdk.filter_wheels if w.id == camera.id), None)
    if wheel is None:
        raise SystemExit(f"No filter wheel plugged into camera '{camera.id}'")

    wheel.open()
    try:
        print(f"Filter wheel with {wheel.get_number_of_filters()} positions, at {wheel.position}")
        wheel.move(args.position)
        if not wheel.wait_for_arrival(timeout=args.timeout):
            raise SystemExit(f"Filter wheel did not arrive within {args.timeout} seconds")
        position = wheel.position
        print(f"Filter wheel at position {position} ('{wheel.positions.get(position, '')}')")
    finally:
        wheel.close()


def cmd_controls(sdk: Sdk, args: argparse.Namespace):
    camera = pick_camera(sdk, args.camera)
    camera.open()
    try:
        for control in QHYControlId:
            if camera.is_control_available(control) is None:
                continue
            try:
                low, high, step = camera.get_parameter_min_max_step(control)
                print(f"{control.name:32} min={low:<12g} max={high:<12g} step={step:g}")
            except QHYError:
                print(f"{control.name:32} (no range)")
    finally:
        camera.close()


COMMANDS = {
    'info': cmd_info,
    'single': cmd_single,
    'live': cmd_live,
    'wheel': cmd_wheel,
    'controls': cmd_controls,
}


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='QHYCCD camera demo',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('--simulated', action='store_true', help='Use the simulated backend')
    parser.add_argument('--camera', default=None, help='Camera id (default: the first camera found)')

    subparsers = parser.add_subparsers(dest='command', required=True)
    subparsers.add_parser('info', help='SDK version, cameras, firmware, chip info and readout modes')
    subparsers.add_parser('controls', help='Available controls with their ranges')

    for name, help_text in (('single', 'Take one exposure and save it'), ('live', 'Stream live frames')):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--exposure', dest='exposure_duration', type=float, default=None, help='Seconds')
        sub.add_argument('--gain', type=float, default=None)
        sub.add_argument('--offset', type=float, default=None)
        sub.add_argument('--readout-mode', dest='readout_mode', type=int, default=None)
        sub.add_argument('--binning', type=int, default=None)
        if name == 'single':
            sub.add_argument('--output', default=None, help='Image path (default: the daily Exposures folder)')
        else:
            sub.add_argument('--frames', type=int, default=Config().get_live().frames)
            sub.add_argument('--save-dir', dest='save_dir', default=None, help='Save each frame as PNG here')

    wheel = subparsers.add_parser('wheel', help='Move the filter wheel')
    wheel.add_argument('--position', required=True, help='Position number or configured name')
    wheel.add_argument('--timeout', type=float, default=30.0, help='Seconds')
    return parser


def main(argv: List[str] | None = None) -> int:
    args = make_parser().parse_args(argv)
    with make_sdk(simulated=True if args.simulated else None) as sdk:
        try:
            COMMANDS[args.command](sdk, args)
        except QHYError as e:
            print(f"Failed: {e}", file=sys.stderr)
            return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
