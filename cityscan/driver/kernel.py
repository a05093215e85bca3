"""Tool driver kernel: the single spawn primitive shared by every adapter.

``run`` wraps ``asyncio.create_subprocess_exec`` once. It enforces the argv
whitelist, scrubs the environment, closes stdin, caps captured output,
applies a hard deadline and honours a caller-supplied cancellation token.
It does not interpret exit codes; adapters decide which codes are clean.
"""

import asyncio
import os
import shutil
import signal
import time
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field

from cityscan.driver.sandbox import build_env, validate_args
from cityscan.errors import CancelledError, OutputExceededError, ToolUnavailableError, UnsafeArgumentError
from cityscan.utils.logging import logger

DEFAULT_TIMEOUT = 300.0
DEFAULT_MAX_OUTPUT_BYTES = 50 * 1024 * 1024
DEFAULT_GRACE_PERIOD = 2.0
PROBE_TIMEOUT = 5.0

_CHUNK_SIZE = 64 * 1024


class CancelToken:
    """Cooperative cancellation shared by the orchestrator and its runs.

    Cancelling is idempotent and may be called from any coroutine on the
    running loop, including an adapter's post-exit handler.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError("Run cancelled by caller")


@dataclass(frozen=True)
class RunOptions:
    """Per-invocation limits. ``timeout`` and ``grace_period`` are in seconds."""

    cwd: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    env: Mapping[str, str] = field(default_factory=dict)
    cancel_token: CancelToken | None = None
    grace_period: float = DEFAULT_GRACE_PERIOD


@dataclass(frozen=True)
class RunResult:
    """Structured outcome of one spawn."""

    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool = False
    killed: bool = False
    duration: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class _CappedReader:
    """Drains one pipe into memory, flagging when the byte budget is exceeded."""

    def __init__(self, stream: asyncio.StreamReader, name: str, limit: int, overflow: asyncio.Event):
        self.stream = stream
        self.name = name
        self.limit = limit
        self.overflow = overflow
        self.buffer = bytearray()
        self.exceeded = False

    async def drain(self) -> None:
        while True:
            chunk = await self.stream.read(_CHUNK_SIZE)
            if not chunk:
                return
            remaining = self.limit - len(self.buffer)
            if len(chunk) > remaining:
                self.buffer.extend(chunk[: max(remaining, 0)])
                self.exceeded = True
                self.overflow.set()
                return
            self.buffer.extend(chunk)

    def text(self) -> str:
        return self.buffer.decode("utf-8", errors="replace")


def resolve_executable(executable: str, env: Mapping[str, str]) -> str:
    """Resolve a bare command name against the scrubbed PATH."""
    if os.path.isabs(executable):
        if not os.access(executable, os.X_OK):
            raise ToolUnavailableError(
                f"Executable not found or not executable: {executable}",
                {"executable": executable},
            )
        return executable
    resolved = shutil.which(executable, path=env.get("PATH"))
    if not resolved:
        raise ToolUnavailableError(
            f"Executable not found on PATH: {executable}",
            {"executable": executable},
        )
    return resolved


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    try:
        os.killpg(process.pid, sig)
    except (ProcessLookupError, PermissionError):
        try:
            process.send_signal(sig)
        except ProcessLookupError:
            pass


def _raise_exceeded(readers: list[_CappedReader], name: str, limit: int) -> None:
    stream = next(r.name for r in readers if r.exceeded)
    raise OutputExceededError(
        f"{name} exceeded the {limit}-byte {stream} budget",
        {"stream": stream, "limit": limit, "executable": name},
    )


async def _terminate(process: asyncio.subprocess.Process, grace_period: float) -> None:
    """SIGTERM, then SIGKILL once the grace period lapses."""
    if process.returncode is not None:
        return
    logger.debug(f"Sending SIGTERM to pid {process.pid}")
    _signal_group(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), timeout=grace_period)
        return
    except TimeoutError:
        pass
    logger.debug(f"Sending SIGKILL to pid {process.pid}")
    _signal_group(process, signal.SIGKILL)
    await process.wait()


async def run(executable: str, args: Sequence[str] = (), opts: RunOptions | None = None) -> RunResult:
    """Run an external tool under the sandbox policy.

    Args:
        executable: Command name (resolved on the scrubbed PATH) or absolute path
        args: argv tail; every element must pass the whitelist
        opts: Limits, working directory, env additions and cancel token

    Returns:
        RunResult. ``timed_out`` runs carry no output; ``killed`` runs carry
        whatever was captured before cancellation.

    Raises:
        UnsafeArgumentError: argv, cwd or env failed policy
        ToolUnavailableError: executable missing or not spawnable
        OutputExceededError: stdout or stderr exceeded ``max_output_bytes``
        CancelledError: token already fired before spawn
    """
    opts = opts or RunOptions()
    argv = validate_args([executable, *args])
    env = build_env(opts.env)

    if opts.cwd is not None and not os.path.isabs(opts.cwd):
        raise UnsafeArgumentError(
            f"Working directory must be absolute: {opts.cwd}",
            {"cwd": opts.cwd},
        )

    token = opts.cancel_token
    if token is not None:
        token.raise_if_cancelled()

    program = resolve_executable(argv[0], env)
    start_time = time.perf_counter()

    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *argv[1:],
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=opts.cwd,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        # ENOEXEC from a broken shim, a vanished cwd and the like.
        raise ToolUnavailableError(
            f"Could not spawn {argv[0]}: {e}",
            {"executable": program, "errno": e.errno},
        ) from e

    logger.debug(f"Spawned {argv[0]} (pid {process.pid})")

    overflow = asyncio.Event()
    readers = [
        _CappedReader(process.stdout, "stdout", opts.max_output_bytes, overflow),
        _CappedReader(process.stderr, "stderr", opts.max_output_bytes, overflow),
    ]
    drain_tasks = [asyncio.create_task(reader.drain()) for reader in readers]
    exit_task = asyncio.create_task(process.wait())
    overflow_task = asyncio.create_task(overflow.wait())
    waiters = {exit_task, overflow_task}
    cancel_task = None
    if token is not None:
        cancel_task = asyncio.create_task(token.wait())
        waiters.add(cancel_task)

    timed_out = False
    killed = False
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=opts.timeout, return_when=asyncio.FIRST_COMPLETED
        )

        if overflow_task in done:
            await _terminate(process, opts.grace_period)
            _raise_exceeded(readers, argv[0], opts.max_output_bytes)

        if exit_task not in done:
            if cancel_task is not None and cancel_task in done:
                killed = True
                logger.debug(f"Cancellation requested for {argv[0]}")
            else:
                timed_out = True
                logger.warning(f"[TIMEOUT] {argv[0]} timed out after {opts.timeout}s")
            await _terminate(process, opts.grace_period)

        await asyncio.wait(drain_tasks, timeout=opts.grace_period)
        # A fast tool can exit before its pipes are drained past the cap.
        if overflow.is_set():
            _raise_exceeded(readers, argv[0], opts.max_output_bytes)
    except asyncio.CancelledError:
        await _terminate(process, opts.grace_period)
        raise
    finally:
        for task in (*drain_tasks, exit_task, overflow_task, cancel_task):
            if task is not None and not task.done():
                task.cancel()
        if process.returncode is None:
            _signal_group(process, signal.SIGKILL)

    duration = time.perf_counter() - start_time
    if timed_out:
        return RunResult(
            exit_code=process.returncode,
            stdout="",
            stderr="",
            timed_out=True,
            killed=True,
            duration=duration,
        )

    return RunResult(
        exit_code=process.returncode,
        stdout=readers[0].text(),
        stderr=readers[1].text(),
        timed_out=False,
        killed=killed,
        duration=duration,
    )


async def probe_version(
    executable: str,
    args: Sequence[str] = ("--version",),
    timeout: float = PROBE_TIMEOUT,
    cwd: str | None = None,
) -> str:
    """Return the first line a tool prints for its version flag.

    Raises:
        ToolUnavailableError: missing executable, non-zero exit or timeout
    """
    opts = RunOptions(cwd=cwd, timeout=timeout, max_output_bytes=64 * 1024)
    try:
        result = await run(executable, args, opts)
    except OutputExceededError as e:
        raise ToolUnavailableError(f"{executable} version probe was too chatty", e.metadata) from e

    if result.timed_out:
        raise ToolUnavailableError(
            f"{executable} version probe timed out after {timeout}s",
            {"executable": executable, "timeout": timeout},
        )
    if result.exit_code != 0:
        raise ToolUnavailableError(
            f"{executable} version probe exited with {result.exit_code}",
            {"executable": executable, "exitCode": result.exit_code, "stderr": result.stderr[-500:]},
        )

    output = (result.stdout or result.stderr).strip()
    return output.splitlines()[0].strip() if output else "unknown"
