#!/usr/bin/env python3
"""
Pipeline stages: capture session -> stream limiter -> image transcoder

Each stage is an OS process. Commands are fixed per device profile; only the
address, credential and output path vary per capture.
"""

import os
import signal
import subprocess
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from remarkable_capture.models import CaptureConfiguration, DeviceProfile
from remarkable_capture.utils import config

CAPTURE = "capture"
LIMITER = "limiter"
TRANSCODER = "transcoder"

STDERR_TAIL_LINES = 20

_SIGPIPE = getattr(signal, "SIGPIPE", 13)


def is_broken_pipe(returncode: Optional[int]) -> bool:
    """Killed by SIGPIPE, either reported by Popen or by a shell wrapper"""
    return returncode in (-_SIGPIPE, 128 + _SIGPIPE)


@dataclass
class Stage:
    """One running process in the pipeline"""
    name: str
    process: object
    group_leader: bool = False
    stderr_tail: deque = field(default_factory=lambda: deque(maxlen=STDERR_TAIL_LINES))

    @property
    def alive(self) -> bool:
        return self.process.poll() is None

    @property
    def returncode(self) -> Optional[int]:
        return self.process.returncode

    def kill(self) -> bool:
        """Kill if still running. Returns True if a kill was sent."""
        if not self.alive:
            return False
        try:
            if self.group_leader:
                os.killpg(self.process.pid, signal.SIGKILL)
            else:
                self.process.kill()
        except ProcessLookupError:
            return False
        except OSError as exc:
            print(f"[Pipeline] Error killing {self.name}: {exc}")
            return False
        return True

    def stderr_summary(self) -> str:
        return " | ".join(self.stderr_tail)


def build_capture_command(cfg: CaptureConfiguration, profile: DeviceProfile):
    """
    SSH command streaming the framebuffer to stdout

    Returns:
        (cmd, env) tuple. env is None in key mode (inherit), otherwise a copy
        of os.environ carrying the password for sshpass -e.
    """
    target = f"{profile.remote_user}@{cfg.remote_address}"
    remote = f"cat {profile.framebuffer_path}"

    if cfg.uses_password:
        cmd = [config.SSHPASS_BINARY, "-e", config.SSH_BINARY, target, remote]
        env = {**os.environ, config.SSHPASS_ENV_VAR: cfg.credential}
        return cmd, env

    return [config.SSH_BINARY, target, remote], None


def build_limiter_command(profile: DeviceProfile) -> list:
    return [config.HEAD_BINARY, "-c", str(profile.expected_byte_count)]


def build_transcoder_command(profile: DeviceProfile, output_path: Path) -> list:
    """ImageMagick: raw gray from stdin -> cropped PNG"""
    return [
        config.CONVERT_BINARY,
        "-size", profile.size_arg,
        "-depth", str(profile.bit_depth),
        "gray:-",
        "-crop", profile.crop_geometry,
        "+repage",
        str(output_path),
    ]


def spawn_capture(cfg: CaptureConfiguration, profile: DeviceProfile,
                  spawn: Callable = subprocess.Popen) -> Stage:
    cmd, env = build_capture_command(cfg, profile)
    # never print cmd with env; the password lives only in env
    print(f"[Capture] Command: {' '.join(cmd)}")
    kwargs = {}
    if os.name == "posix":
        # sshpass forks ssh; both must die together
        kwargs["start_new_session"] = True
    proc = spawn(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
        **kwargs,
    )
    group_leader = bool(kwargs) and isinstance(proc, subprocess.Popen)
    return Stage(CAPTURE, proc, group_leader=group_leader)


def spawn_limiter(profile: DeviceProfile, source,
                  spawn: Callable = subprocess.Popen) -> Stage:
    cmd = build_limiter_command(profile)
    proc = spawn(cmd, stdin=source, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL)
    return Stage(LIMITER, proc)


def spawn_transcoder(profile: DeviceProfile, output_path: Path, source,
                     spawn: Callable = subprocess.Popen) -> Stage:
    cmd = build_transcoder_command(profile, output_path)
    print(f"[Transcoder] Command: {' '.join(cmd)}")
    proc = spawn(cmd, stdin=source, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
    return Stage(TRANSCODER, proc)


def drain_stderr(stage: Stage, tag: str) -> None:
    """Print a stage's stderr line by line and keep a short tail"""
    stream = getattr(stage.process, "stderr", None)
    if stream is None:
        return
    try:
        for raw in iter(stream.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                stage.stderr_tail.append(line)
                print(f"[{tag}] stderr: {line}")
    except (OSError, ValueError) as exc:
        print(f"[{tag}] stderr closed: {exc}")
    finally:
        try:
            stream.close()
        except OSError:
            pass
