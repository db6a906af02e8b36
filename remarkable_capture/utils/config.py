import os
import platform
from pathlib import PurePosixPath
from typing import Optional

from remarkable_capture.models import CaptureConfiguration

# Connection defaults (USB network address of the tablet)
DEFAULT_HOST = "10.11.99.1"
DEFAULT_IMAGE_FOLDER = "attachments"
DEFAULT_TIMEOUT_MS = 30000
DEFAULT_PROFILE = "remarkable2"

# External tools; override with environment variables when not on PATH
SSH_BINARY = os.environ.get("REMARKABLE_SSH", "ssh")
SSHPASS_BINARY = os.environ.get("REMARKABLE_SSHPASS", "sshpass")
HEAD_BINARY = os.environ.get("REMARKABLE_HEAD", "head")
CONVERT_BINARY = os.environ.get("REMARKABLE_CONVERT", "convert")

# sshpass -e reads the password from this variable
SSHPASS_ENV_VAR = "SSHPASS"


def _timeout_from_env() -> int:
    raw = os.environ.get("REMARKABLE_TIMEOUT_MS")
    if raw is None:
        return DEFAULT_TIMEOUT_MS
    try:
        timeout_ms = int(raw)
    except ValueError:
        timeout_ms = 0
    if timeout_ms <= 0:
        print(f"[Config] Warning: ignoring invalid REMARKABLE_TIMEOUT_MS={raw!r}")
        return DEFAULT_TIMEOUT_MS
    return timeout_ms


def _check_image_folder(folder: str) -> str:
    """Image folder must stay inside the base path"""
    path = PurePosixPath(folder.replace("\\", "/"))
    # "C:" style drives count as absolute too
    if path.is_absolute() or ":" in folder or ".." in path.parts:
        raise ValueError(f"Image folder must be a relative path inside the base path, got {folder!r}")
    return folder


def load_configuration(
    host: Optional[str] = None,
    password: Optional[str] = None,
    image_folder: Optional[str] = None,
    timeout_ms: Optional[int] = None,
) -> CaptureConfiguration:
    """
    Build a fresh configuration snapshot.

    Priority: 1) explicit arguments, 2) environment variables, 3) defaults.

    Raises:
        ValueError: If timeout_ms is given and not positive, or the image
            folder is absolute or climbs out of the base path
    """
    if host is None:
        host = os.environ.get("REMARKABLE_HOST", DEFAULT_HOST)
    if password is None:
        password = os.environ.get("REMARKABLE_PASSWORD", "")
    if image_folder is None:
        image_folder = os.environ.get("REMARKABLE_IMAGE_FOLDER", DEFAULT_IMAGE_FOLDER)
    if timeout_ms is None:
        timeout_ms = _timeout_from_env()
    elif timeout_ms <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout_ms} ms")

    image_folder = image_folder.strip() or DEFAULT_IMAGE_FOLDER

    return CaptureConfiguration(
        remote_address=host.strip(),
        credential=password or None,
        destination_folder=_check_image_folder(image_folder),
        timeout_ms=timeout_ms,
    )


def check_platform_compatibility() -> bool:
    """Warn when the shell tools are unlikely to exist natively"""
    if platform.system() == "Windows":
        print(
            "[Config] Warning: Windows detected. Requires WSL, Git Bash, or Cygwin "
            "with sshpass and ImageMagick installed."
        )
        return False
    return True
