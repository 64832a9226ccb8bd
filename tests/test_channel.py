"""Tests for request/response correlation over the worker channel."""

import io
import json
import os
import sys
import threading
import unittest
from pathlib import Path

import pytest

from curator.channel import PendingTable, WorkerChannel, WorkerClient, worker_command
from curator.models import FetchConfig
from curator.worker import build_fetch_config, parse_args
from curator.protocol import (
    ChannelError,
    RemoteError,
    RequestTimeout,
    WorkerExited,
    WorkerStartError,
    encode,
    make_error,
    make_result,
    text_content,
)

REPO_ROOT = Path(__file__).resolve().parents[1]


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class LoopbackWorker:
    """Stands in for the worker's stdin: answers each request synchronously.

    Responses are fed back in small chunks to exercise line reassembly.
    """

    def __init__(self, handler, chunk_size=7):
        self.handler = handler
        self.chunk_size = chunk_size
        self.channel = None
        self.requests = []

    def write(self, data):
        request = json.loads(data)
        self.requests.append(request)
        response = self.handler(request)
        if response is None:
            return
        raw = encode(response)
        for start in range(0, len(raw), self.chunk_size):
            self.channel.feed(raw[start:start + self.chunk_size])

    def flush(self):
        pass


def _loopback(handler):
    worker = LoopbackWorker(handler)
    channel = WorkerChannel(worker)
    worker.channel = channel
    return worker, channel


class TestPendingTable(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.table = PendingTable(max_size=2, clock=self.clock)

    def test_resolve_removes_entry(self):
        entry = self.table.add(1, timeout=5)
        self.assertTrue(self.table.resolve(1, {"ok": True}))
        self.assertEqual(entry.future.result(timeout=0), {"ok": True})
        self.assertEqual(len(self.table), 0)
        self.assertFalse(self.table.resolve(1, {}))

    def test_expire_only_rejects_overdue_entries(self):
        early = self.table.add(1, timeout=5)
        late = self.table.add(2, timeout=30)

        self.clock.now += 10
        self.assertEqual(self.table.expire(), [1])

        with self.assertRaises(RequestTimeout):
            early.future.result(timeout=0)
        self.assertFalse(late.future.done())
        self.assertIn(2, self.table)
        self.assertNotIn(1, self.table)

    def test_bounded(self):
        self.table.add(1, timeout=5)
        self.table.add(2, timeout=5)
        with self.assertRaises(ChannelError):
            self.table.add(3, timeout=5)

    def test_reject_all(self):
        a = self.table.add(1, timeout=5)
        b = self.table.add(2, timeout=5)
        self.table.reject_all(WorkerExited("gone"))
        for entry in (a, b):
            with self.assertRaises(WorkerExited):
                entry.future.result(timeout=0)
        self.assertEqual(len(self.table), 0)


class TestWorkerChannel(unittest.TestCase):
    def test_request_resolves_with_matching_result(self):
        worker, channel = _loopback(lambda req: make_result(req["id"], {"echo": req["method"]}))

        self.assertEqual(channel.request("initialize", {}), {"echo": "initialize"})
        self.assertEqual(channel.request("tools/list"), {"echo": "tools/list"})

        ids = [req["id"] for req in worker.requests]
        self.assertEqual(ids, [1, 2])
        self.assertEqual(worker.requests[0]["jsonrpc"], "2.0")
        self.assertEqual(len(channel.pending), 0)

    def test_error_response_rejects(self):
        _, channel = _loopback(lambda req: make_error(req["id"], "Unknown tool: nope", -32602))

        with self.assertRaises(RemoteError) as ctx:
            channel.request("tools/call", {"name": "nope"})

        self.assertEqual(ctx.exception.code, -32602)
        self.assertIn("Unknown tool", str(ctx.exception))

    def test_responses_for_other_ids_are_ignored(self):
        def handler(req):
            # Out-of-band chatter, a stale id, then the real answer
            worker.channel.feed(b"starting up\n")
            worker.channel.feed(encode(make_result(999, {"stale": True})))
            return make_result(req["id"], {"fresh": True})

        worker, channel = _loopback(handler)

        self.assertEqual(channel.request("initialize"), {"fresh": True})

    def test_timeout_removes_entry_and_late_response_is_ignored(self):
        channel = WorkerChannel(io.BytesIO(), request_timeout=0.05)

        with self.assertRaises(RequestTimeout):
            channel.request("tools/call", {"name": "get_all_titles"})

        self.assertEqual(len(channel.pending), 0)
        channel.feed(encode(make_result(1, {"late": True})))
        self.assertEqual(len(channel.pending), 0)

    def test_timeout_does_not_affect_later_requests(self):
        answered = []

        def handler(req):
            if req["id"] == 1:
                return None
            answered.append(req["id"])
            return make_result(req["id"], {})

        _, channel = _loopback(handler)

        with self.assertRaises(RequestTimeout):
            channel.request("slow", timeout=0.05)
        self.assertEqual(channel.request("fast"), {})
        self.assertEqual(answered, [2])

    def test_worker_exit_rejects_pending(self):
        read_fd, write_fd = os.pipe()
        channel = WorkerChannel(io.BytesIO(), os.fdopen(read_fd, "rb"))
        entry = channel.pending.add(42, timeout=30)

        channel.start()
        os.close(write_fd)

        with self.assertRaises(WorkerExited):
            entry.future.result(timeout=5)

    def test_reader_thread_dispatches_from_pipe(self):
        read_fd, write_fd = os.pipe()
        channel = WorkerChannel(io.BytesIO(), os.fdopen(read_fd, "rb"), request_timeout=5)
        channel.start()

        def respond():
            os.write(write_fd, b'{"jsonrpc": "2.0", "id": 1, ')
            os.write(write_fd, b'"result": {"ok": 1}}\n')

        timer = threading.Timer(0.05, respond)
        timer.start()
        try:
            self.assertEqual(channel.request("initialize"), {"ok": 1})
        finally:
            timer.join()
            os.close(write_fd)

    def test_closed_channel_refuses_requests(self):
        channel = WorkerChannel(io.BytesIO())
        channel.close()
        with self.assertRaises(ChannelError):
            channel.request("initialize")


class TestWorkerClient(unittest.TestCase):
    def test_fetch_titles_parses_embedded_json(self):
        payload = {
            "total_papers": 1,
            "papers_by_category": {"cs.LG": 1},
            "papers": [
                {
                    "id": "http://arxiv.org/abs/2501.00001v1",
                    "title": "Reward Models",
                    "authors": ["Alice"],
                    "published": "2025-01-15T18:00:00+00:00",
                    "categories": ["cs.LG"],
                }
            ],
        }
        worker, channel = _loopback(lambda req: make_result(req["id"], text_content(payload)))

        result = WorkerClient(channel).get_all_titles(50)

        self.assertEqual(result.papers[0].title, "Reward Models")
        self.assertEqual(result.papers[0].published.year, 2025)
        self.assertEqual(
            worker.requests[0]["params"],
            {"name": "get_all_titles", "arguments": {"papers_per_category": 50}},
        )

    def test_failed_handshake_is_a_start_error(self):
        _, channel = _loopback(lambda req: make_error(req["id"], "nope"))
        with self.assertRaises(WorkerStartError):
            WorkerClient(channel).initialize()


def test_real_worker_process_round_trip(monkeypatch):
    monkeypatch.chdir(REPO_ROOT)
    channel = WorkerChannel.spawn(FetchConfig(categories=["cs.LG"]), request_timeout=30)
    client = WorkerClient(channel)
    try:
        info = client.initialize()
        assert info["serverInfo"]["name"] == "arxiv-curator-worker"

        names = [tool["name"] for tool in client.list_tools()]
        assert names == ["get_all_titles", "get_abstracts_for_papers"]

        with pytest.raises(RemoteError, match="Unknown tool"):
            client.call_tool("summarize_everything", {})
    finally:
        client.close()

    assert channel.process.poll() is not None


def test_spawn_failure_is_reported():
    with pytest.raises(WorkerStartError):
        WorkerChannel.spawn(command=[str(REPO_ROOT / "no-such-worker-binary")])


def test_worker_that_dies_fails_handshake():
    channel = WorkerChannel.spawn(command=[sys.executable, "-c", "import sys; sys.exit(3)"])
    try:
        with pytest.raises(WorkerStartError):
            WorkerClient(channel).initialize()
    finally:
        channel.close()


def test_worker_command_carries_fetch_settings():
    config = FetchConfig(
        categories=["cs.LG", "cs.AI"],
        base_url="http://mirror.example/api",
        category_delay=9.0,
        paper_delay=0.25,
        max_attempts=7,
        base_delay=3.0,
        lookup_max_attempts=4,
        lookup_base_delay=0.75,
    )

    command = worker_command(config)

    assert command[:3] == [sys.executable, "-m", "curator.worker"]
    assert build_fetch_config(parse_args(command[3:])) == config


def test_spawn_passes_fetch_settings_to_worker(monkeypatch):
    launched = []

    def _popen(command, **kwargs):
        launched.append(command)
        raise OSError("not launching in tests")

    monkeypatch.setattr("curator.channel.subprocess.Popen", _popen)

    with pytest.raises(WorkerStartError):
        WorkerChannel.spawn(FetchConfig(category_delay=9.0, max_attempts=7))

    command = launched[0]
    assert command[command.index("--category-delay") + 1] == "9.0"
    assert command[command.index("--max-attempts") + 1] == "7"
