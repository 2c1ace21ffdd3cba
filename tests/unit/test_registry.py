"""
Unit tests for the resource registry.
"""

import logging
import os
import socket
import threading

import pytest

from lineterm.core import ResourceRegistry, close_socket, release_buffer
from lineterm.session import EditBuffer


class TestRegisterUnregister:
    """register/unregister bookkeeping."""

    def test_handles_are_unique(self, recording_registry):
        handles = [recording_registry.register_socket(object()) for _ in range(5)]

        assert len(set(handles)) == 5
        assert recording_registry.socket_count == 5

    def test_unregister_removes_without_closing(self, recording_registry, socket_closer):
        sock = object()
        handle = recording_registry.register_socket(sock)

        assert recording_registry.unregister_socket(handle)
        assert not recording_registry.contains_socket(handle)
        assert socket_closer.count(sock) == 0

    def test_second_unregister_is_noop(self, recording_registry):
        handle = recording_registry.register_buffer(bytearray())

        assert recording_registry.unregister_buffer(handle)
        assert not recording_registry.unregister_buffer(handle)
        assert recording_registry.buffer_count == 0

    def test_unknown_handle_is_noop(self, recording_registry):
        assert not recording_registry.unregister_socket(12345)
        assert not recording_registry.release_buffer(12345)

    def test_sockets_and_buffers_are_separate(self, recording_registry):
        handle = recording_registry.register_socket(object())

        assert not recording_registry.unregister_buffer(handle)
        assert recording_registry.contains_socket(handle)


class TestRelease:
    """release_* closes exactly once."""

    def test_release_closes_once(self, recording_registry, socket_closer):
        sock = object()
        handle = recording_registry.register_socket(sock)

        assert recording_registry.release_socket(handle)
        assert not recording_registry.release_socket(handle)
        assert socket_closer.count(sock) == 1

    def test_release_buffer(self, recording_registry, buffer_releaser):
        buf = bytearray(b"abc")
        handle = recording_registry.register_buffer(buf)

        assert recording_registry.release_buffer(handle)
        assert buffer_releaser.count(buf) == 1


class TestCleanup:
    """The shutdown sweep."""

    def test_empty_cleanup_closes_nothing(self, recording_registry, socket_closer, buffer_releaser):
        assert recording_registry.cleanup() == 0
        assert socket_closer.total == 0
        assert buffer_releaser.total == 0
        assert recording_registry.stats["sweeps"] == 1

    def test_second_cleanup_closes_nothing(self, recording_registry, socket_closer, buffer_releaser):
        sockets = [object(), object()]
        buf = bytearray()
        for sock in sockets:
            recording_registry.register_socket(sock)
        recording_registry.register_buffer(buf)

        assert recording_registry.cleanup() == 3
        assert recording_registry.cleanup() == 0

        assert all(socket_closer.count(sock) == 1 for sock in sockets)
        assert buffer_releaser.count(buf) == 1
        assert recording_registry.stats == {"sockets": 0, "buffers": 0, "sweeps": 2}

    def test_release_after_cleanup_is_noop(self, recording_registry, socket_closer):
        sock = object()
        handle = recording_registry.register_socket(sock)
        recording_registry.cleanup()

        assert not recording_registry.release_socket(handle)
        assert socket_closer.count(sock) == 1

    def test_failing_closer_does_not_stop_sweep(self, buffer_releaser, caplog):
        def broken_closer(sock):
            raise OSError("boom")

        registry = ResourceRegistry(socket_closer=broken_closer, buffer_releaser=buffer_releaser)
        registry.register_socket(object())
        buf = bytearray()
        registry.register_buffer(buf)

        with caplog.at_level(logging.WARNING, logger="lineterm.core.registry"):
            assert registry.cleanup() == 2

        assert buffer_releaser.count(buf) == 1
        assert registry.socket_count == 0
        assert "boom" in caplog.text


class TestLease:
    """Scoped leases."""

    def test_context_manager_releases(self, recording_registry, socket_closer):
        sock = object()

        with recording_registry.lease_socket(sock) as lease:
            assert lease.active
            assert lease.kind == "socket"
            assert recording_registry.contains_socket(lease.handle)

        assert not lease.active
        assert socket_closer.count(sock) == 1

    def test_release_is_idempotent(self, recording_registry, buffer_releaser):
        buf = bytearray()
        lease = recording_registry.lease_buffer(buf)

        assert lease.release()
        assert not lease.release()
        assert buffer_releaser.count(buf) == 1

    def test_lease_after_sweep(self, recording_registry, socket_closer):
        sock = object()
        lease = recording_registry.lease_socket(sock)

        recording_registry.cleanup()

        assert not lease.active
        assert not lease.release()
        assert socket_closer.count(sock) == 1

    def test_exception_in_block_still_releases(self, recording_registry, socket_closer):
        sock = object()

        with pytest.raises(RuntimeError):
            with recording_registry.lease_socket(sock):
                raise RuntimeError("session crashed")

        assert socket_closer.count(sock) == 1
        assert recording_registry.socket_count == 0


class TestDefaultClosers:
    """close_socket / release_buffer."""

    def test_close_socket_object(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        close_socket(sock)

        assert sock.fileno() == -1

    def test_close_socket_fd(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        fd = sock.detach()

        close_socket(fd)

        with pytest.raises(OSError):
            os.fstat(fd)

    def test_close_connected_pair(self):
        left, right = socket.socketpair()
        try:
            close_socket(left)
            assert right.recv(1) == b""
        finally:
            right.close()

    def test_release_edit_buffer(self):
        buf = EditBuffer(8)
        release_buffer(buf)
        assert buf.released

    def test_release_bytearray(self):
        buf = bytearray(b"abc")
        release_buffer(buf)
        assert buf == bytearray()


class TestConcurrency:
    """Threads racing release() against cleanup()."""

    def test_racing_release_and_cleanup_close_each_once(self, recording_registry, socket_closer):
        resources = [object() for _ in range(200)]
        leases = [recording_registry.lease_socket(r) for r in resources]
        start = threading.Barrier(5)

        def release_slice(part):
            start.wait()
            for lease in leases[part::4]:
                lease.release()

        def sweep():
            start.wait()
            recording_registry.cleanup()

        threads = [threading.Thread(target=release_slice, args=(i,)) for i in range(4)]
        threads.append(threading.Thread(target=sweep))
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert recording_registry.socket_count == 0
        assert all(socket_closer.count(r) == 1 for r in resources)
