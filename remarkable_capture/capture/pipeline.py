#!/usr/bin/env python3
"""
Pipeline controller

Wires capture -> limiter -> transcoder through OS pipes and supervises them.
Watcher threads never touch controller state: each one posts a StageEvent to
a single queue, and only run() drains it. The first terminal outcome wins;
every later event is ignored.

    Idle -> Running -> Succeeded | Failed | TimedOut | Cancelled
"""

from __future__ import annotations

import queue
import subprocess
import threading
import time
from typing import Callable, NamedTuple, Optional

from remarkable_capture.models import (
    CaptureConfiguration,
    CaptureRequest,
    CaptureResult,
    DeviceProfile,
)

from .errors import (
    CaptureCancelledError,
    CaptureError,
    CaptureTimeoutError,
    DirectoryError,
    LimiterError,
    SessionConnectionError,
    TranscodeError,
)
from .stages import (
    CAPTURE,
    LIMITER,
    TRANSCODER,
    Stage,
    drain_stderr,
    is_broken_pipe,
    spawn_capture,
    spawn_limiter,
    spawn_transcoder,
)

CANCEL = "cancel"
EXIT = "exit"

# How long teardown waits for watcher threads to observe the kills
JOIN_TIMEOUT_SEC = 2.0


class StageEvent(NamedTuple):
    stage: str
    kind: str
    returncode: Optional[int] = None


class PipelineController:
    """Runs one capture. Not reusable: create one per invocation."""

    def __init__(
        self,
        cfg: CaptureConfiguration,
        request: CaptureRequest,
        profile: DeviceProfile,
        spawn: Callable = subprocess.Popen,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.request = request
        self.profile = profile
        self._spawn = spawn
        self._clock = clock

        self._events: queue.Queue = queue.Queue()
        self._lock = threading.Lock()
        self._threads: list = []

        self.stages: list = []
        self.result: Optional[CaptureResult] = None
        self.limiter_closed = False
        self.killed: set = set()
        # non-zero capture exit seen after the limiter was already gone;
        # turns a later transcoder failure into a connection failure
        self._upstream_failure: Optional[int] = None

    @property
    def completed(self) -> bool:
        return self.result is not None

    def stage(self, name: str) -> Optional[Stage]:
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    # public API
    def run(self) -> CaptureResult:
        """Block until the pipeline reaches a terminal state"""
        try:
            self._ensure_output_dir()
        except DirectoryError as exc:
            self._fail(exc)
            return self.result

        deadline = self._clock() + self.cfg.timeout_ms / 1000.0
        self._start_stages()

        while not self.completed:
            remaining = deadline - self._clock()
            if remaining <= 0:
                self._fail(CaptureTimeoutError(
                    f"Screenshot capture timed out after {self.cfg.timeout_ms} ms. "
                    "Check network connection and device status."
                ))
                break
            try:
                event = self._events.get(timeout=remaining)
            except queue.Empty:
                continue
            self.handle_event(event)

        return self.result

    def cancel(self) -> None:
        """Request cancellation; safe from any thread"""
        self._events.put(StageEvent("controller", CANCEL))

    def handle_event(self, event: StageEvent) -> None:
        if self.completed:
            print(f"[Pipeline] Ignoring late {event.kind} from {event.stage}")
            return

        if event.kind == CANCEL:
            self._fail(CaptureCancelledError("Screenshot capture cancelled"))
        elif event.stage == LIMITER:
            self._on_limiter_exit(event.returncode)
        elif event.stage == CAPTURE:
            self._on_capture_exit(event.returncode)
        elif event.stage == TRANSCODER:
            self._on_transcoder_exit(event.returncode)

    # setup
    def _ensure_output_dir(self) -> None:
        output_dir = self.request.output_dir
        if output_dir.is_dir():
            return
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise DirectoryError(f"Failed to create directory {output_dir}: {exc}") from exc

    def _start_stages(self) -> None:
        try:
            capture = spawn_capture(self.cfg, self.profile, self._spawn)
        except OSError as exc:
            self._fail(SessionConnectionError(
                f"SSH connection failed: {exc}", self.cfg.uses_password
            ))
            return
        self._track(capture, stderr_tag="Capture")

        try:
            limiter = spawn_limiter(self.profile, capture.process.stdout, self._spawn)
        except OSError as exc:
            self._close_parent_stdout(capture)
            self._fail(LimiterError(f"Head command failed: {exc}"))
            return
        self._track(limiter)
        self._close_parent_stdout(capture)

        try:
            transcoder = spawn_transcoder(
                self.profile, self.request.output_path, limiter.process.stdout, self._spawn
            )
        except OSError as exc:
            self._close_parent_stdout(limiter)
            self._fail(TranscodeError(
                f"ImageMagick failed: {exc}. Ensure ImageMagick is installed."
            ))
            return
        self._track(transcoder, stderr_tag="Transcoder")
        self._close_parent_stdout(limiter)

        print(
            f"[Pipeline] Streaming {self.profile.expected_byte_count:,} bytes "
            f"from {self.cfg.remote_address} -> {self.request.output_path.name}"
        )

    def _track(self, stage: Stage, stderr_tag: Optional[str] = None) -> None:
        self.stages.append(stage)
        self._start_thread(self._watch, stage)
        if stderr_tag:
            self._start_thread(drain_stderr, stage, stderr_tag)

    def _start_thread(self, target, *args) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True)
        thread.start()
        self._threads.append(thread)

    def _watch(self, stage: Stage) -> None:
        returncode = stage.process.wait()
        self._events.put(StageEvent(stage.name, EXIT, returncode))

    @staticmethod
    def _close_parent_stdout(stage: Stage) -> None:
        # the child holds its own copy; ours must go so SIGPIPE can reach upstream
        stream = getattr(stage.process, "stdout", None)
        if stream is not None:
            stream.close()

    # event handlers
    def _on_limiter_exit(self, returncode: Optional[int]) -> None:
        self.limiter_closed = True
        if returncode:
            print(f"[Pipeline] Limiter exited with code {returncode}")

        # remote cat has no natural end
        capture = self.stage(CAPTURE)
        if capture is not None and capture.kill():
            self.killed.add(CAPTURE)

    def _on_capture_exit(self, returncode: Optional[int]) -> None:
        if returncode == 0 or is_broken_pipe(returncode) or CAPTURE in self.killed:
            return

        capture = self.stage(CAPTURE)
        detail = capture.stderr_summary() if capture is not None else ""
        limiter = self.stage(LIMITER)
        limiter_running = limiter is not None and limiter.alive

        if self.limiter_closed or not limiter_running:
            # could be the downstream close; the transcoder result decides
            self._upstream_failure = returncode
            print(f"[Pipeline] Capture exited with code {returncode} after limiter closed")
            return

        message = f"SSH connection failed: exited with code {returncode}"
        if detail:
            message += f" ({detail})"
        self._fail(SessionConnectionError(message, self.cfg.uses_password))

    def _on_transcoder_exit(self, returncode: Optional[int]) -> None:
        if returncode == 0:
            self._resolve(CaptureResult(path=self.request.relative_path))
            return

        transcoder = self.stage(TRANSCODER)
        detail = transcoder.stderr_summary() if transcoder is not None else ""

        if self._upstream_failure is not None:
            message = (
                f"SSH connection failed: exited with code {self._upstream_failure} "
                f"(ImageMagick exited with code {returncode})"
            )
            self._fail(SessionConnectionError(message, self.cfg.uses_password))
            return

        message = f"ImageMagick exited with code {returncode}"
        if detail:
            message += f": {detail}"
        self._fail(TranscodeError(message, returncode))

    # resolution
    def _fail(self, error: CaptureError) -> None:
        self._resolve(CaptureResult(error=error))

    def _resolve(self, result: CaptureResult) -> bool:
        with self._lock:
            if self.result is not None:
                return False
            self.result = result

        self._teardown()
        if result.ok:
            print(f"[Pipeline] Saved {result.path}")
        else:
            print(f"[Pipeline] Failed ({result.kind}): {result.error}")
            if self.stage(TRANSCODER) is not None:
                self._discard_partial_output()
        return True

    def _teardown(self) -> None:
        for stage in self.stages:
            if stage.kill():
                self.killed.add(stage.name)
        for thread in self._threads:
            thread.join(timeout=JOIN_TIMEOUT_SEC)

    def _discard_partial_output(self) -> None:
        output_path = self.request.output_path
        try:
            output_path.unlink(missing_ok=True)
        except OSError as exc:
            print(f"[Pipeline] Warning: could not remove partial {output_path.name}: {exc}")
