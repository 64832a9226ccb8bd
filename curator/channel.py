"""Orchestrator side of the worker request channel.

``WorkerChannel`` owns the worker process, writes request lines to its stdin
and correlates response lines from its stdout by request id.
``WorkerClient`` wraps the channel with the two feed operations so the
pipeline can use it in place of an in-process ``ArxivFeedSource``.
"""

import itertools
import logging
import os
import subprocess
import sys
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import __version__
from .models import AbstractsResult, FetchConfig, TitlesResult
from .protocol import (
    PROTOCOL_VERSION,
    ChannelError,
    LineBuffer,
    RemoteError,
    RequestTimeout,
    WorkerExited,
    WorkerStartError,
    decode,
    encode,
    make_request,
    read_text_content,
)
from .worker import worker_arguments

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_TIMEOUT = 60.0
MAX_PENDING = 64


def worker_command(fetch_config: FetchConfig) -> List[str]:
    """Command line that starts the feed worker with ``fetch_config``."""
    return [sys.executable, "-m", "curator.worker"] + worker_arguments(fetch_config)


@dataclass
class PendingRequest:
    """One outstanding call waiting for its response."""

    id: int
    future: Future
    deadline: float


class PendingTable:
    """Bounded map of request id to waiter."""

    def __init__(self, max_size: int = MAX_PENDING, clock=time.monotonic):
        self.max_size = max_size
        self.clock = clock
        self._entries: Dict[int, PendingRequest] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, request_id: int) -> bool:
        with self._lock:
            return request_id in self._entries

    def add(self, request_id: int, timeout: float) -> PendingRequest:
        with self._lock:
            if len(self._entries) >= self.max_size:
                raise ChannelError(f"Too many pending requests ({self.max_size})")
            if request_id in self._entries:
                raise ChannelError(f"Duplicate request id {request_id}")
            entry = PendingRequest(request_id, Future(), self.clock() + timeout)
            self._entries[request_id] = entry
            return entry

    def pop(self, request_id: Any) -> Optional[PendingRequest]:
        with self._lock:
            return self._entries.pop(request_id, None)

    def resolve(self, request_id: Any, result: Any) -> bool:
        entry = self.pop(request_id)
        if entry is None:
            return False
        entry.future.set_result(result)
        return True

    def reject(self, request_id: Any, error: BaseException) -> bool:
        entry = self.pop(request_id)
        if entry is None:
            return False
        entry.future.set_exception(error)
        return True

    def expire(self) -> List[int]:
        """Reject and remove every entry whose deadline has passed."""
        now = self.clock()
        with self._lock:
            expired = [e for e in self._entries.values() if e.deadline <= now]
            for entry in expired:
                del self._entries[entry.id]
        for entry in expired:
            entry.future.set_exception(RequestTimeout(f"Request {entry.id} timed out"))
        return [entry.id for entry in expired]

    def reject_all(self, error: BaseException) -> None:
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.future.set_exception(error)


class WorkerChannel:
    """Request/response channel over a worker's stdin and stdout."""

    def __init__(
        self,
        stdin,
        stdout=None,
        stderr=None,
        process: Optional[subprocess.Popen] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        """
        Initialize the channel.

        Args:
            stdin: Binary stream the worker reads requests from
            stdout: Binary stream the worker writes responses to
            stderr: Binary stream with the worker's diagnostics
            process: Worker process, if the channel owns one
            request_timeout: Default per-request timeout in seconds
        """
        self.stdin = stdin
        self.stdout = stdout
        self.stderr = stderr
        self.process = process
        self.request_timeout = request_timeout
        self.pending = PendingTable()
        self.buffer = LineBuffer()
        self._ids = itertools.count(1)
        self._write_lock = threading.Lock()
        self._threads: List[threading.Thread] = []
        self._closed = False
        self._eof = False

    @classmethod
    def spawn(
        cls,
        fetch_config: Optional[FetchConfig] = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        command: Optional[List[str]] = None,
    ) -> "WorkerChannel":
        """Start the worker process and begin reading its output."""
        if command is None:
            command = worker_command(fetch_config or FetchConfig())

        logger.info(f"Starting worker: {' '.join(command)}")
        env = dict(os.environ)
        env.setdefault("PYTHONUNBUFFERED", "1")
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise WorkerStartError(f"Failed to start worker: {e}")

        channel = cls(
            process.stdin,
            process.stdout,
            process.stderr,
            process=process,
            request_timeout=request_timeout,
        )
        channel.start()
        return channel

    def start(self) -> None:
        """Start background readers for stdout and stderr."""
        if self.stdout is not None:
            self._start_thread(self._read_stdout, "worker-stdout")
        if self.stderr is not None:
            self._start_thread(self._read_stderr, "worker-stderr")

    def _start_thread(self, target, name: str) -> None:
        thread = threading.Thread(target=target, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def _read_stdout(self) -> None:
        fd = self.stdout.fileno()
        while True:
            try:
                chunk = os.read(fd, 65536)
            except OSError:
                break
            if not chunk:
                break
            self.feed(chunk)
        logger.info("Worker output closed")
        self._eof = True
        self.pending.reject_all(WorkerExited("Worker exited before responding"))

    def _read_stderr(self) -> None:
        for raw in iter(self.stderr.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                logger.info(f"Server: {line}")

    def feed(self, chunk: bytes) -> None:
        """Process a chunk of worker output, dispatching complete lines."""
        for line in self.buffer.feed(chunk):
            self._dispatch(line)

    def _dispatch(self, line: str) -> None:
        message = decode(line)
        if message is None:
            return

        request_id = message.get("id")
        if not isinstance(request_id, int):
            return

        if "error" in message:
            error = message.get("error") or {}
            matched = self.pending.reject(
                request_id,
                RemoteError(error.get("message", "Unknown error"), error.get("code")),
            )
        elif "result" in message:
            matched = self.pending.resolve(request_id, message["result"])
        else:
            return

        if not matched:
            logger.debug(f"Ignoring response for unknown or expired request {request_id}")

    def request(self, method: str, params: Optional[dict] = None, timeout: Optional[float] = None) -> Any:
        """
        Send a request and wait for its response.

        Args:
            method: Remote method name
            params: Method parameters
            timeout: Seconds to wait (defaults to the channel's request_timeout)

        Returns:
            The ``result`` member of the response

        Raises:
            RequestTimeout: No response arrived before the deadline
            RemoteError: The worker answered with an error
            WorkerExited: The worker went away while the request was pending
        """
        if self._closed:
            raise ChannelError("Channel is closed")

        timeout = self.request_timeout if timeout is None else timeout
        request_id = next(self._ids)
        entry = self.pending.add(request_id, timeout)
        if self._eof:
            self.pending.pop(request_id)
            raise WorkerExited("Worker is no longer running")

        try:
            with self._write_lock:
                self.stdin.write(encode(make_request(request_id, method, params)))
                self.stdin.flush()
        except (OSError, ValueError) as e:
            self.pending.pop(request_id)
            raise WorkerExited(f"Cannot write to worker: {e}")

        try:
            return entry.future.result(timeout=max(0.0, entry.deadline - self.pending.clock()))
        except FutureTimeout:
            self.pending.expire()
            # A response may have landed between the wait and the expiry sweep.
            if entry.future.done():
                return entry.future.result()
            self.pending.pop(request_id)
            raise RequestTimeout(f"Request timeout: {method} (id={request_id})")

    def close(self, wait: float = 5.0) -> None:
        """Stop the worker and fail whatever is still pending."""
        if self._closed:
            return
        self._closed = True

        if self.process is not None:
            if self.process.poll() is None:
                try:
                    self.process.stdin.close()
                except OSError:
                    pass
                self.process.terminate()
                try:
                    self.process.wait(timeout=wait)
                except subprocess.TimeoutExpired:
                    logger.warning("Worker did not stop, killing it")
                    self.process.kill()
                    self.process.wait()
            logger.info("Disconnected from worker")

        self.pending.reject_all(WorkerExited("Channel closed"))


class WorkerClient:
    """Feed operations executed by a worker process."""

    def __init__(self, channel: WorkerChannel):
        self.channel = channel

    def initialize(self) -> dict:
        """Perform the handshake; must succeed before any tool call."""
        try:
            return self.channel.request(
                "initialize",
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {},
                    "clientInfo": {"name": "arxiv-curator", "version": __version__},
                },
            )
        except ChannelError as e:
            raise WorkerStartError(f"Worker handshake failed: {e}")

    def list_tools(self) -> List[dict]:
        return self.channel.request("tools/list").get("tools", [])

    def call_tool(self, name: str, arguments: dict) -> Any:
        result = self.channel.request("tools/call", {"name": name, "arguments": arguments})
        return read_text_content(result)

    def get_all_titles(self, papers_per_category: int) -> TitlesResult:
        logger.info("Requesting titles from worker...")
        data = self.call_tool("get_all_titles", {"papers_per_category": papers_per_category})
        return TitlesResult.from_dict(data)

    def get_abstracts_for_papers(self, paper_urls: List[str]) -> AbstractsResult:
        data = self.call_tool("get_abstracts_for_papers", {"paper_urls": list(paper_urls)})
        return AbstractsResult.from_dict(data)

    def close(self) -> None:
        self.channel.close()
