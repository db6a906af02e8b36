#!/usr/bin/env python3
import shutil

from remarkable_capture.models import DeviceProfile
from remarkable_capture.utils import config

# Known framebuffer layouts. Supporting a new model is a new row here.
PROFILES = {
    "remarkable2": DeviceProfile(
        name="remarkable2",
        width=1408,
        height=1872,
        bit_depth=16,
        crop_width=1404,
        crop_height=1872,
    ),
}


def get_profile(profile_name: str) -> DeviceProfile:
    """
    Look up a device profile by name

    Args:
        profile_name: 'remarkable2', etc.

    Returns:
        DeviceProfile instance

    Raises:
        ValueError: If profile_name is unknown
    """
    profile_name = profile_name.lower()

    try:
        return PROFILES[profile_name]
    except KeyError:
        raise ValueError(
            f"Unknown device profile: {profile_name}. "
            f"Supported: {', '.join(sorted(PROFILES))}"
        ) from None


def list_profiles() -> dict:
    """Map profile name to a one-line geometry summary"""
    return {
        name: (
            f"{p.size_arg} @ {p.bit_depth} bit, crop {p.crop_geometry}, "
            f"{p.expected_byte_count:,} bytes"
        )
        for name, p in PROFILES.items()
    }


def list_tools(uses_password: bool = True) -> dict:
    """
    Check which external tools are on PATH

    Returns:
        dict mapping tool name to 'available' or 'missing'
    """
    tools = {
        "ssh": config.SSH_BINARY,
        "head": config.HEAD_BINARY,
        "convert (ImageMagick)": config.CONVERT_BINARY,
        "ping": "ping",
    }
    if uses_password:
        tools["sshpass"] = config.SSHPASS_BINARY

    return {
        name: "available" if shutil.which(binary) else "missing"
        for name, binary in tools.items()
    }
