#!/usr/bin/env python3
"""
Raw framebuffer dump inspection

Checks a dump (e.g. `ssh root@10.11.99.1 cat /dev/fb0 | head -c N > fb.raw`)
against a device profile before the profile is trusted by the pipeline.
"""

from pathlib import Path

import numpy as np

from remarkable_capture.models import DeviceProfile


def pixel_dtype(profile: DeviceProfile) -> np.dtype:
    # ImageMagick reads multi-byte gray samples MSB first
    return np.dtype(f">u{profile.bytes_per_pixel}")


def frame_from_bytes(raw: bytes, profile: DeviceProfile) -> np.ndarray:
    """
    Reinterpret raw bytes as a (height, width) gray raster

    Raises:
        ValueError: If fewer than expected_byte_count bytes are given
    """
    expected = profile.expected_byte_count
    if len(raw) < expected:
        raise ValueError(
            f"Frame too small for {profile.name}: {len(raw):,} < {expected:,} bytes"
        )
    pixels = np.frombuffer(raw[:expected], dtype=pixel_dtype(profile))
    return pixels.reshape(profile.height, profile.width)


def crop_visible(frame: np.ndarray, profile: DeviceProfile) -> np.ndarray:
    """Same region the transcoder keeps (-crop WxH+X+Y)"""
    return frame[
        profile.crop_y:profile.crop_y + profile.crop_height,
        profile.crop_x:profile.crop_x + profile.crop_width,
    ]


def load_raw_frame(path: Path, profile: DeviceProfile) -> np.ndarray:
    return frame_from_bytes(Path(path).read_bytes(), profile)


def inspect_raw_frame(path: Path, profile: DeviceProfile) -> dict:
    """
    Summarize a raw dump

    Returns:
        dict with byte counts, visible-region statistics and whether the
        columns outside the crop hold a single value (i.e. look like padding)
    """
    path = Path(path)
    file_size = path.stat().st_size
    frame = load_raw_frame(path, profile)
    visible = crop_visible(frame, profile)

    mask = np.ones(frame.shape, dtype=bool)
    mask[
        profile.crop_y:profile.crop_y + profile.crop_height,
        profile.crop_x:profile.crop_x + profile.crop_width,
    ] = False
    padding = frame[mask]
    padding_uniform = bool(padding.size == 0 or np.all(padding == padding[0]))

    full_scale = np.iinfo(frame.dtype).max
    print(f"[Frame] {path.name}: {file_size:,} bytes, profile {profile.name}")

    return {
        "file_size_bytes": file_size,
        "expected_bytes": profile.expected_byte_count,
        "extra_bytes": file_size - profile.expected_byte_count,
        "visible_shape": tuple(visible.shape),
        "min": int(visible.min()),
        "max": int(visible.max()),
        "mean": round(float(visible.mean()), 2),
        "ink_fraction": round(float(np.mean(visible < full_scale // 2)), 4),
        "padding_uniform": padding_uniform,
    }
