"""In-process stand-ins for the pipeline's OS processes"""

import io
import threading
from typing import Optional

STAGE_ORDER = ("capture", "limiter", "transcoder")


class FakeProcess:
    """
    Popen look-alike.

    returncode=None means the process runs until killed. With `after`, the
    exit is delayed until that other fake has finished; otherwise it exits
    after `delay` seconds.
    """

    def __init__(self, returncode: Optional[int] = None, delay: float = 0.0,
                 after: Optional["FakeProcess"] = None, stderr: bytes = b""):
        self.cmd = None
        self.kwargs = {}
        self.stdout = None
        self.stderr = io.BytesIO(stderr) if stderr else None
        self.returncode = None
        self.kill_calls = 0
        self._planned = returncode
        self._delay = delay
        self._after = after
        self._lock = threading.Lock()
        self._done = threading.Event()

    @classmethod
    def finished(cls, code: int) -> "FakeProcess":
        proc = cls()
        proc._finish(code)
        return proc

    def start(self, cmd, kwargs):
        self.cmd = cmd
        self.kwargs = kwargs
        if self._planned is not None:
            threading.Thread(target=self._exit_later, daemon=True).start()
        return self

    def _exit_later(self):
        if self._after is not None:
            self._after.wait()
        elif self._delay:
            self._done.wait(self._delay)
        self._finish(self._planned)

    def _finish(self, code):
        with self._lock:
            if self.returncode is None:
                self.returncode = code
                self._done.set()

    @property
    def killed(self) -> bool:
        return self.kill_calls > 0

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        self._done.wait(timeout)
        return self.returncode

    def kill(self):
        self.kill_calls += 1
        self._finish(-9)


class FakeSpawner:
    """
    Popen replacement handing out fakes in pipeline order.

    Each plan is a callable taking the spawner and returning a FakeProcess,
    or an exception instance to raise at launch.
    """

    def __init__(self, capture=None, limiter=None, transcoder=None):
        self.plans = {
            "capture": capture or (lambda s: FakeProcess()),
            "limiter": limiter or (lambda s: FakeProcess()),
            "transcoder": transcoder or (lambda s: FakeProcess()),
        }
        self.calls = []
        self.processes = {}

    def __call__(self, cmd, **kwargs):
        name = STAGE_ORDER[len(self.calls)]
        self.calls.append((name, cmd, kwargs))
        plan = self.plans[name]
        if isinstance(plan, BaseException):
            raise plan
        proc = plan(self).start(cmd, kwargs)
        self.processes[name] = proc
        return proc

    @property
    def spawned(self) -> list:
        return [name for name, _, _ in self.calls if name in self.processes]

    def still_running(self) -> list:
        return [name for name, proc in self.processes.items() if proc.poll() is None]


def streaming_spawner(transcoder_code=0):
    """Capture streams forever, limiter completes, transcoder ends once capture is gone"""
    return FakeSpawner(
        capture=lambda s: FakeProcess(),
        limiter=lambda s: FakeProcess(returncode=0),
        transcoder=lambda s: FakeProcess(
            returncode=transcoder_code, after=s.processes["capture"]
        ),
    )
