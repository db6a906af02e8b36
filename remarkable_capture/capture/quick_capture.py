#!/usr/bin/env python3
"""
Capture the reMarkable screen and save it as PNG

Usage:
    remarkable-capture --base-path ~/notes
    remarkable-capture --ping-only
    remarkable-capture --inspect fb0.raw
"""

import argparse
import subprocess
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from remarkable_capture.capture.capture_manager import (
    get_profile,
    list_profiles,
    list_tools,
)
from remarkable_capture.capture.errors import UnreachableError, ValidationError
from remarkable_capture.capture.pipeline import PipelineController
from remarkable_capture.capture.reachability import check_reachability, validate_address
from remarkable_capture.database.sqlite_logger import init_db, log_to_sqlite
from remarkable_capture.models import (
    CaptureConfiguration,
    CaptureRequest,
    CaptureResult,
    DeviceProfile,
)
from remarkable_capture.utils import config
from remarkable_capture.utils.analyze_frame import inspect_raw_frame


def make_filename(now: Optional[datetime] = None) -> str:
    """remarkable-<ISO 8601 UTC, ms precision> with ':' and '.' as '-'"""
    now = now or datetime.now(timezone.utc)
    stamp = f"{now:%Y-%m-%dT%H:%M:%S}.{now.microsecond // 1000:03d}Z"
    return f"remarkable-{stamp.replace(':', '-').replace('.', '-')}.png"


def build_request(base_path: Path, cfg: CaptureConfiguration,
                  now: Optional[datetime] = None) -> CaptureRequest:
    output_dir = Path(base_path).expanduser().resolve() / cfg.destination_folder
    filename = make_filename(now)

    # same-millisecond captures: suffix instead of overwriting
    stem = filename[:-len(".png")]
    counter = 1
    while (output_dir / filename).exists():
        filename = f"{stem}-{counter}.png"
        counter += 1

    return CaptureRequest(
        output_dir=output_dir,
        filename=filename,
        destination_folder=cfg.destination_folder,
    )


# public API
def capture_screenshot(
    base_path: Path,
    cfg: CaptureConfiguration,
    profile: Optional[DeviceProfile] = None,
    spawn: Callable = subprocess.Popen,
    probe: Callable[[str], bool] = check_reachability,
) -> CaptureResult:
    """
    Validate, probe, then run the capture pipeline

    Args:
        base_path: Directory the destination folder is relative to
        cfg: Settings snapshot for this capture
        profile: Device geometry (default: remarkable2)
        spawn: Process factory for the pipeline stages
        probe: Reachability check

    Returns:
        CaptureResult with the relative PNG path, or the error
    """
    profile = profile or get_profile(config.DEFAULT_PROFILE)

    if not validate_address(cfg.remote_address):
        return CaptureResult(error=ValidationError(
            f"Invalid IP address format: {cfg.remote_address!r}. Please check settings."
        ))

    try:
        reachable = probe(cfg.remote_address)
    except ValidationError as exc:
        return CaptureResult(error=exc)
    if not reachable:
        return CaptureResult(error=UnreachableError(
            "reMarkable device not reachable. Check IP address and network connection."
        ))

    if cfg.uses_password:
        print(
            "[Config] Warning: SSH password is stored in plain text. "
            "For better security, use SSH key authentication instead."
        )

    request = build_request(base_path, cfg)
    print(f"[QuickCapture] Capturing reMarkable screenshot -> {request.relative_path}")
    controller = PipelineController(cfg, request, profile, spawn=spawn)
    return controller.run()


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}")
    if number <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {number}")
    return number


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Capture the reMarkable screen over SSH and save it as PNG.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Requirements:
  ssh access to the tablet (key auth recommended: ssh-keygen, then copy the
  public key to the tablet), sshpass for password auth, ImageMagick (convert).
        """,
    )
    parser.add_argument("--host", help=f"Tablet IP address (default: {config.DEFAULT_HOST}).")
    parser.add_argument(
        "--password",
        help="SSH password. Leave unset for SSH key authentication (recommended).",
    )
    parser.add_argument(
        "--image-folder",
        help=f"Folder under --base-path for screenshots (default: {config.DEFAULT_IMAGE_FOLDER}).",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_int,
        help=f"Capture timeout in milliseconds (default: {config.DEFAULT_TIMEOUT_MS}).",
    )
    parser.add_argument(
        "--base-path",
        type=Path,
        default=Path.cwd(),
        help="Base directory for the image folder (default: current directory).",
    )
    parser.add_argument(
        "--profile",
        default=config.DEFAULT_PROFILE,
        help=f"Device profile (default: {config.DEFAULT_PROFILE}).",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        help="SQLite manifest to record successful captures in.",
    )
    parser.add_argument("--ping-only", action="store_true",
                        help="Only check whether the tablet is reachable")
    parser.add_argument("--list-tools", action="store_true",
                        help="List required external tools and exit")
    parser.add_argument("--list-profiles", action="store_true",
                        help="List device profiles and exit")
    parser.add_argument("--inspect", type=Path, metavar="RAW_FILE",
                        help="Inspect a raw framebuffer dump against --profile and exit")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    if args.list_profiles:
        print("Available device profiles:")
        for name, summary in list_profiles().items():
            print(f"  {name}: {summary}")
        return 0

    try:
        profile = get_profile(args.profile)
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    if args.inspect:
        try:
            stats = inspect_raw_frame(args.inspect, profile)
        except (OSError, ValueError) as e:
            print(f"ERROR: {e}")
            return 1
        for key, value in stats.items():
            print(f"  {key}: {value}")
        return 0

    try:
        cfg = config.load_configuration(
            host=args.host,
            password=args.password,
            image_folder=args.image_folder,
            timeout_ms=args.timeout,
        )
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1

    if args.list_tools:
        print("External tools:")
        for name, status in list_tools(cfg.uses_password).items():
            print(f"  {name}: {status}")
        return 0

    config.check_platform_compatibility()

    if args.ping_only:
        try:
            reachable = check_reachability(cfg.remote_address)
        except ValidationError as e:
            print(f"ERROR: {e}")
            return 1
        print(f"{cfg.remote_address}: {'reachable' if reachable else 'not reachable'}")
        return 0 if reachable else 1

    result = capture_screenshot(args.base_path, cfg, profile)
    print(result.message)
    if not result.ok:
        return 1

    if args.manifest:
        init_db(args.manifest)
        log_to_sqlite(args.manifest, {
            "host": cfg.remote_address,
            "profile": profile.name,
            "relative_path": result.path,
            "file_path": args.base_path.expanduser().resolve() / result.path,
        })
    return 0


if __name__ == "__main__":
    sys.exit(main())
