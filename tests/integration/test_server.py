"""
Integration tests for the upload server.

These tests start a real FileServer on an OS-assigned port and talk to it
over TCP, either with FileClient or with hand-built frames.
"""

import json
import logging
import socket
import threading
import time
from pathlib import Path

import pytest

from filestats import FileClient, FileServer, analyze_file
from filestats.storage import ResultLog

from conftest import RunningServer, raw_header, read_reply


def artifacts(save_dir: Path):
    return sorted(p for p in save_dir.iterdir() if p.name != "analysis_result.txt")


def result_log(save_dir: Path) -> ResultLog:
    return ResultLog(save_dir / "analysis_result.txt")


class TestRoundTrip:
    """Tests for complete uploads."""

    def test_client_result_matches_local_analysis(self, running_server, sample_file, save_dir):
        """Test that the reply equals analyzing the stored file locally."""
        client = FileClient(running_server.client_config())

        result = client.send_file(sample_file)
        running_server.wait_for_idle()

        stored = artifacts(save_dir)
        assert len(stored) == 1
        assert stored[0].read_bytes() == sample_file.read_bytes()
        assert result == analyze_file(stored[0], "sample.txt")
        assert (result.line_count, result.word_count, result.char_count) == (2, 3, 15)

    def test_result_is_logged(self, running_server, sample_file, save_dir):
        """Test that the result log holds one block per upload."""
        client = FileClient(running_server.client_config())

        first = client.send_file(sample_file)
        second = client.send_file(sample_file)
        running_server.wait_for_idle()

        assert result_log(save_dir).read_entries() == [first, second]
        assert len(artifacts(save_dir)) == 2

    def test_save_directory_created_on_start(self, tmp_path, server_config):
        """Test that a missing save directory is created before listening."""
        server_config.save_dir = str(tmp_path / "deep" / "er")
        srv = RunningServer(FileServer(server_config))
        srv.start()
        try:
            assert (tmp_path / "deep" / "er").is_dir()
        finally:
            srv.stop()


class TestConcurrentUploads:
    """Tests for many clients at once."""

    def test_ten_parallel_uploads(self, running_server, tmp_path, save_dir):
        """Test that every upload is stored and logged exactly once."""
        files = []
        for i in range(10):
            path = tmp_path / f"file{i}.txt"
            path.write_text(("line\n" * (i + 1)) + "end", encoding="utf-8")
            files.append(path)

        results = [None] * len(files)
        errors = []

        def upload(index: int):
            try:
                client = FileClient(running_server.client_config())
                results[index] = client.send_file(files[index])
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=upload, args=(i,)) for i in range(len(files))]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)
        running_server.wait_for_idle()

        assert errors == []
        for i, result in enumerate(results):
            assert result.file_name == f"file{i}.txt"
            assert result.line_count == i + 2

        entries = result_log(save_dir).read_entries()
        assert len(entries) == 10
        assert sorted(e.file_name for e in entries) == sorted(p.name for p in files)

        stored = artifacts(save_dir)
        assert len(stored) == 10
        assert len({p.name for p in stored}) == 10

    def test_same_name_uploads_do_not_collide(self, running_server, sample_file, save_dir):
        """Test that identical names get distinct artifacts."""
        client = FileClient(running_server.client_config())
        for _ in range(3):
            client.send_file(sample_file)
        running_server.wait_for_idle()

        stored = artifacts(save_dir)
        assert len(stored) == 3
        assert all(p.name.endswith("_sample.txt") for p in stored)


class TestRejectedUploads:
    """Tests for errors seen over the wire."""

    def test_incomplete_upload(self, running_server, save_dir):
        """Test that a short upload leaves no artifact and no log entry."""
        with running_server.connect() as sock:
            sock.sendall(raw_header(b"short.txt", 100) + b"only ten b")
            sock.shutdown(socket.SHUT_WR)
            reply = read_reply(sock)
        running_server.wait_for_idle()

        assert reply.startswith("ERROR:")
        assert "expected 100 bytes, received 10" in reply
        assert artifacts(save_dir) == []
        assert result_log(save_dir).read_entries() == []

    @pytest.mark.parametrize("name, size, message", [
        (b"a" * 261, 5, "Invalid file name"),
        (b"../secret.txt", 5, "Invalid file name"),
        (b"big.bin", 100 * 1024 * 1024 + 1, "Invalid file size"),
        (b"zero.txt", 0, "Invalid file size"),
    ])
    def test_invalid_header(self, running_server, save_dir, name, size, message):
        """Test that invalid headers are answered with an error reply."""
        with running_server.connect() as sock:
            sock.sendall(raw_header(name, size))
            reply = read_reply(sock)
        running_server.wait_for_idle()

        assert reply.startswith("ERROR:")
        assert message in reply
        assert artifacts(save_dir) == []

    def test_newline_in_name_keeps_log_readable(self, running_server, sample_file, save_dir):
        """Test that a name with a newline is rejected and later results still parse."""
        with running_server.connect() as sock:
            sock.sendall(raw_header(b"a\nLines: 9.txt", 3) + b"abc")
            reply = read_reply(sock)
        result = FileClient(running_server.client_config()).send_file(sample_file)
        running_server.wait_for_idle()

        assert reply.startswith("ERROR:")
        assert "Invalid file name" in reply
        assert result_log(save_dir).read_entries() == [result]
        assert len(artifacts(save_dir)) == 1

    def test_negative_name_length(self, running_server):
        """Test a header whose name length is negative."""
        with running_server.connect() as sock:
            sock.sendall(raw_header(b"", 5, name_length=-1))
            reply = read_reply(sock)

        assert reply.startswith("ERROR:")

    def test_server_keeps_serving_after_errors(self, running_server, sample_file):
        """Test that one bad client does not affect the next."""
        with running_server.connect() as sock:
            sock.sendall(b"\x01")
        client = FileClient(running_server.client_config())

        assert client.send_file(sample_file).word_count == 3


class TestLifecycle:
    """Tests for starting and stopping."""

    def test_stop_does_not_cancel_inflight_upload(self, running_server, save_dir):
        """Test that stop() ends accepting while a started upload completes."""
        payload = b"alpha beta\ngamma"
        sock = running_server.connect()
        try:
            sock.sendall(raw_header(b"slow.txt", len(payload)) + payload[:5])
            deadline = time.time() + 5.0
            while running_server.server.connections_accepted < 1 and time.time() < deadline:
                time.sleep(0.01)

            running_server.stop()
            assert not running_server.accept_loop_alive

            sock.sendall(payload[5:])
            reply = read_reply(sock)
        finally:
            sock.close()
        running_server.wait_for_idle()

        assert reply == "File name: slow.txt\nLines: 2, Words: 3, Characters: 16"
        assert len(result_log(save_dir).read_entries()) == 1

    def test_no_new_connections_after_stop(self, running_server):
        """Test that the listening socket is closed by stop()."""
        port = running_server.port
        running_server.stop()

        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", port), timeout=1.0).close()

    def test_stop_is_idempotent(self, running_server):
        """Test calling stop() twice."""
        running_server.stop()
        running_server.stop()

        assert not running_server.server.is_running

    def test_bind_failure_raises(self, server_config):
        """Test that an occupied port is reported to the caller."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupier:
            occupier.bind(("127.0.0.1", 0))
            occupier.listen(1)
            server_config.port = occupier.getsockname()[1]

            with pytest.raises(OSError):
                FileServer(server_config).run()

    def test_invalid_config_rejected(self, server_config):
        """Test that FileServer validates its configuration."""
        server_config.backlog = 0

        with pytest.raises(ValueError):
            FileServer(server_config)


class TestTransferLogging:
    """Tests for per-connection transfer records."""

    def test_json_transfer_record(self, server_config, sample_file, caplog):
        """Test one JSON record per upload."""
        server_config.log_format = "json"
        srv = RunningServer(FileServer(server_config))
        srv.start()
        try:
            with caplog.at_level(logging.INFO, logger="filestats.transfers"):
                FileClient(srv.client_config()).send_file(sample_file)
                srv.wait_for_idle()
        finally:
            srv.stop()

        records = [r for r in caplog.records if r.name == "filestats.transfers"]
        assert len(records) == 1
        data = json.loads(records[0].getMessage())
        assert data["outcome"] == "ok"
        assert data["file_name"] == "sample.txt"
        assert data["declared_size"] == 15
        assert data["bytes_received"] == 15

    def test_failed_transfer_logged_as_warning(self, running_server, caplog):
        """Test that rejected uploads are logged at WARNING."""
        with caplog.at_level(logging.INFO, logger="filestats.transfers"):
            with running_server.connect() as sock:
                sock.sendall(raw_header(b"../x", 1))
                read_reply(sock)
            running_server.wait_for_idle()

        records = [r for r in caplog.records if r.name == "filestats.transfers"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert "ValidationError" in records[0].getMessage()
