"""
Process Supervisor for downloader subprocesses
Launches, tracks and force-kills yt-dlp child processes with timeouts and stall detection
"""
import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

import psutil

from config.settings import (
    YTDLP_COMMAND, DOWNLOAD_TIMEOUT, DOWNLOAD_TIMEOUT_LONG, STALL_TIMEOUT
)

logger = logging.getLogger('music.supervisor')

# Keep at most this much diagnostic text per run
MAX_CAPTURE_CHARS = 64 * 1024


class OutcomeStatus(Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'
    TIMED_OUT = 'timed_out'
    STALLED = 'stalled'
    KILLED = 'killed'


@dataclass
class ProcessOutcome:
    """Result of one supervised subprocess run"""
    status: OutcomeStatus
    exit_code: Optional[int] = None
    stderr: str = ''
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.SUCCESS


@dataclass
class DownloadPolicy:
    """Time limits for one run; stall detection only applies to long-form entries"""
    timeout: float = DOWNLOAD_TIMEOUT
    stall_timeout: Optional[float] = None
    long_form: bool = False

    @classmethod
    def for_entry(cls, long_form: bool) -> 'DownloadPolicy':
        if long_form:
            return cls(timeout=DOWNLOAD_TIMEOUT_LONG, stall_timeout=STALL_TIMEOUT, long_form=True)
        return cls(timeout=DOWNLOAD_TIMEOUT)


def kill_process_tree(pid: int) -> int:
    """Non-graceful kill of a process and all of its descendants; returns the number killed"""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return 0

    try:
        victims = parent.children(recursive=True)
    except psutil.Error:
        victims = []
    victims.append(parent)

    killed = 0
    for proc in victims:
        try:
            proc.kill()
            killed += 1
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied as e:
            logger.warning(f"⚠️ Could not kill process {proc.pid}: {e}")
    return killed


@dataclass
class _RunState:
    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    captured: int = 0
    last_output: float = 0.0


class ProcessSupervisor:
    """Owns every in-flight downloader process"""

    def __init__(self, command: Optional[List[str]] = None, heartbeat_interval: float = 1.0):
        self.command = list(command or YTDLP_COMMAND)
        self.heartbeat_interval = heartbeat_interval
        self.active: Dict[int, asyncio.subprocess.Process] = {}
        self._owners: Dict[int, Any] = {}
        self._cancelled: Set[int] = set()
        self.total_runs = 0

    def build_download_args(self, url: str, format_args: List[str], output_template: str,
                            long_form: bool = False, extra_args: Optional[List[str]] = None) -> List[str]:
        """Full downloader argv: format directive, reliability flags, output and URL"""
        if long_form:
            reliability = ['--retries', '10', '--fragment-retries', '10', '--socket-timeout', '60']
        else:
            reliability = ['--retries', '3', '--fragment-retries', '3', '--socket-timeout', '30']

        return [
            *self.command,
            *format_args,
            *reliability,
            '--no-playlist',
            '--newline',
            '--no-warnings',
            '-x', '--audio-format', 'mp3',
            *(extra_args or []),
            '-o', output_template,
            url,
        ]

    async def run_download(self, url: str, format_args: List[str], output_template: str,
                           policy: DownloadPolicy, extra_args: Optional[List[str]] = None,
                           owner: Any = None) -> ProcessOutcome:
        """Run the downloader for one URL under the given policy"""
        argv = self.build_download_args(url, format_args, output_template, policy.long_form, extra_args)
        return await self.run(argv, policy, owner=owner)

    async def run(self, argv: List[str], policy: DownloadPolicy, owner: Any = None) -> ProcessOutcome:
        """Spawn argv and supervise it until exit, timeout, stall or external kill"""
        loop = asyncio.get_running_loop()
        started = loop.time()
        self.total_runs += 1

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except (OSError, ValueError) as e:
            logger.error(f"❌ Could not start downloader: {e}")
            return ProcessOutcome(OutcomeStatus.FAILURE, exit_code=None, stderr=str(e))

        pid = process.pid
        self.active[pid] = process
        self._owners[pid] = owner
        state = _RunState(last_output=loop.time())
        readers = asyncio.gather(
            self._pump(process.stdout, state, state.stdout),
            self._pump(process.stderr, state, state.stderr),
        )
        waiter = asyncio.ensure_future(process.wait())

        status = None
        try:
            while not waiter.done():
                await asyncio.wait({waiter}, timeout=self.heartbeat_interval)
                if waiter.done():
                    break
                now = loop.time()
                if pid in self._cancelled:
                    status = OutcomeStatus.KILLED
                elif now - started >= policy.timeout:
                    status = OutcomeStatus.TIMED_OUT
                    logger.warning(f"⏱️ Downloader {pid} timed out after {policy.timeout}s")
                elif policy.stall_timeout and now - state.last_output >= policy.stall_timeout:
                    status = OutcomeStatus.STALLED
                    logger.warning(f"🐌 Downloader {pid} stalled ({policy.stall_timeout}s without progress)")
                if status is not None:
                    kill_process_tree(pid)
                    await waiter
                    break
        except asyncio.CancelledError:
            kill_process_tree(pid)
            raise
        finally:
            if not waiter.done():
                waiter.cancel()
            try:
                await asyncio.wait_for(readers, timeout=5)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                readers.cancel()
            self.active.pop(pid, None)
            self._owners.pop(pid, None)
            if pid in self._cancelled:
                self._cancelled.discard(pid)
                status = OutcomeStatus.KILLED

        exit_code = process.returncode
        if status is None:
            status = OutcomeStatus.SUCCESS if exit_code == 0 else OutcomeStatus.FAILURE

        stderr_text = ''.join(state.stderr)
        if status is OutcomeStatus.FAILURE and not stderr_text.strip():
            # Some failures only explain themselves on stdout
            stderr_text = ''.join(state.stdout)

        return ProcessOutcome(status, exit_code=exit_code, stderr=stderr_text, elapsed=loop.time() - started)

    async def _pump(self, stream, state: _RunState, sink: List[str]):
        """Read continuously so the child never blocks on a full pipe"""
        if stream is None:
            return
        loop = asyncio.get_running_loop()
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            state.last_output = loop.time()
            if state.captured < MAX_CAPTURE_CHARS:
                text = chunk.decode('utf-8', errors='replace')
                sink.append(text)
                state.captured += len(text)

    def kill_all(self, owner: Any = None) -> int:
        """Force-kill in-flight processes (only those of owner when given); their runs report KILLED"""
        count = 0
        for pid in list(self.active):
            if owner is not None and self._owners.get(pid) != owner:
                continue
            self._cancelled.add(pid)
            kill_process_tree(pid)
            count += 1
        if count:
            logger.info(f"🔪 Killed {count} downloader process(es)")
        return count

    def get_stats(self):
        return {
            'active_processes': len(self.active),
            'active_pids': sorted(self.active),
            'total_runs': self.total_runs,
            'supervisor_pid': os.getpid(),
        }


# Global process supervisor instance
process_supervisor = ProcessSupervisor()
