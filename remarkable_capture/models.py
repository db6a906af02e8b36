# models.py
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from remarkable_capture.capture.errors import CaptureError


@dataclass(frozen=True, slots=True)
class DeviceProfile:
    """Framebuffer geometry of one device model"""
    name: str
    width: int
    height: int
    bit_depth: int
    crop_width: int
    crop_height: int
    crop_x: int = 0
    crop_y: int = 0
    framebuffer_path: str = "/dev/fb0"
    remote_user: str = "root"

    @property
    def bytes_per_pixel(self) -> int:
        return self.bit_depth // 8

    @property
    def expected_byte_count(self) -> int:
        return self.width * self.height * self.bytes_per_pixel

    @property
    def size_arg(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def crop_geometry(self) -> str:
        return f"{self.crop_width}x{self.crop_height}+{self.crop_x}+{self.crop_y}"


@dataclass(frozen=True, slots=True)
class CaptureConfiguration:
    """Immutable settings snapshot for one capture"""
    remote_address: str
    credential: Optional[str] = None
    destination_folder: str = "attachments"
    timeout_ms: int = 30000

    @property
    def uses_password(self) -> bool:
        return bool(self.credential)

    def __repr__(self) -> str:
        # keep the secret out of tracebacks and prints
        secret = "***" if self.credential else None
        return (
            f"CaptureConfiguration(remote_address={self.remote_address!r}, "
            f"credential={secret!r}, destination_folder={self.destination_folder!r}, "
            f"timeout_ms={self.timeout_ms!r})"
        )


@dataclass(frozen=True, slots=True)
class CaptureRequest:
    """Resolved output location for one invocation"""
    output_dir: Path
    filename: str
    destination_folder: str

    @property
    def output_path(self) -> Path:
        return self.output_dir / self.filename

    @property
    def relative_path(self) -> str:
        return f"{self.destination_folder}/{self.filename}"


@dataclass(frozen=True, slots=True)
class CaptureResult:
    """Outcome of one capture: a relative path or an error, never both"""
    path: Optional[str] = None
    error: Optional[CaptureError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[str]:
        return None if self.error is None else self.error.kind

    @property
    def message(self) -> str:
        if self.error is None:
            return f"Screenshot saved: {self.path}"
        return f"Screenshot failed: {self.error}"
