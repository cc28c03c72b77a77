"""
Unit tests for the listening socket helpers and AcceptLoop.
"""

import errno
import socket
import threading
import time

import pytest

from healthgate.core.connection import EchoConnection
from healthgate.core.listener import (
    AcceptLoop,
    BindError,
    RESOURCE_ACCEPT_ERRORS,
    TRANSIENT_ACCEPT_ERRORS,
    create_listener,
)
from healthgate.core.work_group import WorkGroup


class TestCreateListener:
    """Tests for create_listener()."""

    def test_binds_and_listens(self):
        """Port 0 binds an OS-chosen port with the accept timeout applied."""
        sock = create_listener("127.0.0.1", 0, accept_timeout=0.25)
        try:
            host, port = sock.getsockname()[:2]
            assert host == "127.0.0.1"
            assert port > 0
            assert sock.gettimeout() == 0.25
        finally:
            sock.close()

    def test_port_in_use_raises_bind_error(self):
        """A second bind on the same port is a BindError."""
        first = create_listener("127.0.0.1", 0)
        try:
            port = first.getsockname()[1]
            with pytest.raises(BindError):
                create_listener("127.0.0.1", port)
        finally:
            first.close()

    def test_unresolvable_address_raises_bind_error(self):
        """An address that does not resolve is a BindError, not a gaierror."""
        with pytest.raises(BindError):
            create_listener("no-such-host.invalid", 0)

    def test_bind_error_is_os_error(self):
        """Callers catching OSError also catch BindError."""
        assert issubclass(BindError, OSError)


class TestAcceptLoop:
    """Tests for AcceptLoop."""

    def make_loop(self, listener):
        shutdown = threading.Event()
        work = WorkGroup()

        def factory(client_socket, client_address):
            return EchoConnection(
                socket=client_socket,
                address=client_address,
                shutdown=shutdown,
                work=work,
                timeout=0.2,
            )

        return AcceptLoop(listener, shutdown, work, factory), shutdown, work

    def test_accepts_and_spawns_handlers(self):
        """Accepted clients are served and counted."""
        listener = create_listener("127.0.0.1", 0, accept_timeout=0.05)
        address = listener.getsockname()[:2]
        loop, shutdown, work = self.make_loop(listener)
        work.add()
        thread = threading.Thread(target=loop.run, daemon=True)
        thread.start()

        with socket.create_connection(address, timeout=5.0) as client:
            client.sendall(b"abc")
            assert client.recv(4096) == b"abc"

        shutdown.set()
        assert work.wait(timeout=5.0) is True
        thread.join(timeout=5.0)
        assert loop.accepted == 1

    def test_shutdown_closes_listener(self):
        """The loop exits on shutdown and the port stops accepting."""
        listener = create_listener("127.0.0.1", 0, accept_timeout=0.05)
        address = listener.getsockname()[:2]
        loop, shutdown, work = self.make_loop(listener)
        work.add()
        thread = threading.Thread(target=loop.run, daemon=True)
        thread.start()

        shutdown.set()
        assert work.wait(timeout=5.0) is True
        thread.join(timeout=5.0)

        assert listener.fileno() == -1
        with pytest.raises(ConnectionRefusedError):
            socket.create_connection(address, timeout=1.0)

    def test_accept_errors_do_not_end_the_loop(self):
        """Only the shutdown signal stops the loop, not accept() failures."""

        class FlakyListener:
            def __init__(self):
                self.calls = 0
                self.closed = False

            def accept(self):
                self.calls += 1
                if self.calls == 1:
                    raise OSError(errno.ECONNABORTED, "aborted")
                if self.calls == 2:
                    raise OSError(errno.EBADF, "bad descriptor")
                if self.calls == 3:
                    raise socket.timeout("timed out")
                loop.shutdown.set()
                raise socket.timeout("timed out")

            def close(self):
                self.closed = True

        listener = FlakyListener()
        loop, shutdown, work = self.make_loop(listener)
        work.add()
        loop.run()

        assert listener.calls == 4
        assert listener.closed
        assert work.count == 0

    def test_transient_errors_include_common_codes(self):
        assert errno.ECONNABORTED in TRANSIENT_ACCEPT_ERRORS
        assert errno.EINTR in TRANSIENT_ACCEPT_ERRORS
        assert errno.EBADF not in TRANSIENT_ACCEPT_ERRORS
        assert errno.EMFILE not in TRANSIENT_ACCEPT_ERRORS

    def test_resource_errors_are_separate(self):
        assert errno.EMFILE in RESOURCE_ACCEPT_ERRORS
        assert errno.ENFILE in RESOURCE_ACCEPT_ERRORS
        assert not RESOURCE_ACCEPT_ERRORS & TRANSIENT_ACCEPT_ERRORS

    def test_descriptor_exhaustion_backs_off(self):
        """Repeated EMFILE is retried at a bounded rate, not in a busy loop."""

        class ExhaustedListener:
            def __init__(self):
                self.calls = 0

            def accept(self):
                self.calls += 1
                raise OSError(errno.EMFILE, "Too many open files")

            def close(self):
                pass

        listener = ExhaustedListener()
        loop, shutdown, work = self.make_loop(listener)
        work.add()
        thread = threading.Thread(target=loop.run, daemon=True)
        thread.start()

        time.sleep(0.5)
        shutdown.set()
        thread.join(timeout=5.0)

        assert not thread.is_alive()
        # 0.5 s at a 50 ms back-off is about ten attempts
        assert 1 <= listener.calls < 50
        assert work.count == 0
