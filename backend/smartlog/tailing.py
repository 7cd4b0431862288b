"""Tail supervision: one `tail -F` child process per watched source.

Each TailSupervisor spawns the follow process, frames its stdout into lines,
parses them and hands the records to the hub.  Problems with the child
(stderr chatter, read errors, unexpected exit) are turned into records for
that source rather than raised.  A supervisor whose process exits on its own
is dropped from the TailManager and is not restarted; only an explicit
start (re-add, or the startup pass) brings it back.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from typing import TYPE_CHECKING

from smartlog.records import LogRecord, parse_line, synthetic_record
from smartlog.registry import RegistryError, is_readable, normalize_path

if TYPE_CHECKING:
    from smartlog.hub import BroadcastHub
    from smartlog.registry import SourceRegistry

logger = logging.getLogger(__name__)

Publish = Callable[[str, LogRecord], None]

READ_CHUNK = 64 * 1024


class LineFramer:
    """Accumulates decoded output and yields complete lines.

    Bytes are decoded incrementally so a UTF-8 sequence split across two reads
    is reassembled; the text after the last newline is held until more data
    (or end of stream) arrives.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        text = self._pending + self._decoder.decode(chunk)
        *lines, self._pending = text.split("\n")
        return [line[:-1] if line.endswith("\r") else line for line in lines]

    def flush(self) -> str | None:
        """Return whatever is left at end of stream, if anything."""
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if rest.endswith("\r"):
            rest = rest[:-1]
        return rest or None


class TailSupervisor:
    """Owns the follow process and reader task for one source path."""

    def __init__(
        self,
        path: str,
        argv: Sequence[str],
        publish: Publish,
        *,
        on_exit: Callable[[TailSupervisor], None] | None = None,
        stop_grace: float = 2.0,
    ) -> None:
        self.path = path
        self._argv = list(argv)
        self._publish = publish
        self._on_exit = on_exit
        self._stop_grace = stop_grace
        self._framer = LineFramer()
        self._process: asyncio.subprocess.Process | None = None
        self._task: asyncio.Task | None = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None and not self._stopping

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    async def start(self) -> None:
        """Spawn the follow process. Raises OSError if it cannot be started."""
        self._process = await asyncio.create_subprocess_exec(
            *self._argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        self._task = asyncio.create_task(self._run(), name=f"tail:{self.path}")
        logger.info("Started tail for %s (pid %d)", self.path, self._process.pid)

    def _emit(self, record: LogRecord) -> None:
        if self._stopping:
            return
        self._publish(self.path, record)

    def _emit_line(self, line: str) -> None:
        record = parse_line(line)
        if record is not None:
            self._emit(record)

    async def _pump_stdout(self, stream: asyncio.StreamReader) -> None:
        try:
            while True:
                chunk = await stream.read(READ_CHUNK)
                if not chunk:
                    break
                for line in self._framer.feed(chunk):
                    self._emit_line(line)
        except OSError as e:
            logger.warning("Reading tail output for %s failed: %s", self.path, e)
            self._emit(synthetic_record("ERROR", f"Tail error: {e}", str(e)))
            return
        rest = self._framer.flush()
        if rest is not None:
            self._emit_line(rest)

    async def _pump_stderr(self, stream: asyncio.StreamReader) -> None:
        try:
            async for raw in stream:
                msg = raw.decode("utf-8", errors="replace").strip()
                if msg:
                    self._emit(synthetic_record("STDERR", msg))
        except (OSError, ValueError) as e:
            # ValueError: a single stderr line longer than the reader limit
            logger.warning("Reading tail stderr for %s failed: %s", self.path, e)
            self._emit(synthetic_record("ERROR", f"Tail error: {e}", str(e)))

    async def _run(self) -> None:
        proc = self._process
        assert proc is not None and proc.stdout is not None and proc.stderr is not None
        try:
            await asyncio.gather(self._pump_stdout(proc.stdout), self._pump_stderr(proc.stderr))
            code = await proc.wait()
            if self._stopping:
                return
            if code != 0:
                logger.warning("Tail for %s exited with code %s", self.path, code)
                self._emit(
                    synthetic_record(
                        "WARN",
                        f"Tail process exited (code: {code})",
                        f"Tail exited: {code}",
                    )
                )
            else:
                logger.info("Tail for %s exited", self.path)
        finally:
            if not self._stopping and self._on_exit is not None:
                self._on_exit(self)

    async def stop(self) -> None:
        """Terminate the follow process, escalating to SIGKILL after the grace period."""
        if self._stopping:
            return
        self._stopping = True
        proc = self._process
        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=self._stop_grace)
            except TimeoutError:
                logger.warning("Tail for %s ignored SIGTERM, killing", self.path)
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        logger.info("Stopped tail for %s", self.path)


class TailManager:
    """Keeps at most one TailSupervisor per normalized source path.

    Everything that changes what runs for a path (start, stop, and the
    registry add/remove paired with them) happens under that path's lock.
    Locks are dropped once no supervisor runs for the path and nobody waits.
    """

    def __init__(
        self,
        hub: BroadcastHub,
        *,
        command: str = "tail",
        seed_lines: int = 100,
        stop_grace: float = 2.0,
    ) -> None:
        self._hub = hub
        self._command = command
        self._seed_lines = seed_lines
        self._stop_grace = stop_grace
        self._tails: dict[str, TailSupervisor] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def command_for(self, path: str) -> list[str]:
        return [self._command, "-F", "-n", str(self._seed_lines), path]

    @property
    def paths(self) -> list[str]:
        return list(self._tails)

    @property
    def locked_paths(self) -> list[str]:
        return list(self._locks)

    def is_running(self, path: str) -> bool:
        return normalize_path(path) in self._tails

    def get(self, path: str) -> TailSupervisor | None:
        return self._tails.get(normalize_path(path))

    @contextlib.asynccontextmanager
    async def _locked(self, path: str) -> AsyncIterator[None]:
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        self._waiters[path] = self._waiters.get(path, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[path] -= 1
            if not self._waiters[path]:
                del self._waiters[path]
                if path not in self._tails:
                    del self._locks[path]

    def _forget(self, supervisor: TailSupervisor) -> None:
        # A replacement may already be registered under the same path.
        if self._tails.get(supervisor.path) is supervisor:
            del self._tails[supervisor.path]
            if supervisor.path not in self._waiters:
                self._locks.pop(supervisor.path, None)

    async def _start_locked(self, path: str) -> bool:
        await self._stop_locked(path)
        supervisor = TailSupervisor(
            path,
            self.command_for(path),
            self._hub.publish,
            on_exit=self._forget,
            stop_grace=self._stop_grace,
        )
        try:
            await supervisor.start()
        except OSError as e:
            logger.error("Failed to start tail for %s: %s", path, e)
            self._hub.publish(path, synthetic_record("ERROR", f"Failed to start tail: {e}", str(e)))
            return False
        self._tails[path] = supervisor
        return True

    async def _stop_locked(self, path: str) -> None:
        supervisor = self._tails.pop(path, None)
        if supervisor is not None:
            await supervisor.stop()

    async def start(self, path: str) -> bool:
        """(Re)start following *path*. Returns False if the process could not spawn."""
        path = normalize_path(path)
        async with self._locked(path):
            return await self._start_locked(path)

    async def stop(self, path: str) -> None:
        """Stop following *path* and drop its history. Unknown paths are ignored."""
        path = normalize_path(path)
        async with self._locked(path):
            await self._stop_locked(path)
            self._hub.clear_history(path)

    async def add(
        self,
        registry: SourceRegistry,
        path: str,
        tag_name: str | None = None,
        color: str | None = None,
    ) -> bool:
        """Register *path* and follow it unless a tail already runs.

        Raises RegistryError without starting anything when the write fails.
        """
        path = normalize_path(path)
        async with self._locked(path):
            registry.add(path, tag_name, color)
            if path in self._tails:
                return True
            return await self._start_locked(path)

    async def remove(self, registry: SourceRegistry, path: str) -> None:
        """Stop following *path*, drop its history and unregister it."""
        path = normalize_path(path)
        async with self._locked(path):
            await self._stop_locked(path)
            self._hub.clear_history(path)
            registry.remove(path)

    async def stop_all(self) -> None:
        paths = list(self._tails)
        if paths:
            logger.info("Stopping %d tail(s)", len(paths))
        await asyncio.gather(*(self.stop(p) for p in paths))

    async def start_registered(self, registry: SourceRegistry) -> int:
        """Start a tail for every readable registered source; returns how many started."""
        try:
            sources = registry.list()
        except RegistryError as e:
            logger.error("Could not load sources: %s", e)
            return 0
        started = 0
        for source in sources:
            if not is_readable(source.path):
                logger.info("Skipping unreadable source %s", source.path)
                continue
            if await self.start(source.path):
                started += 1
        return started
