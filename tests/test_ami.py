"""Tests for the AMI wire codec and socket client, against a local fake gateway."""

from __future__ import annotations

import io
import socket
import socketserver
import threading
from unittest.mock import MagicMock, patch

import pytest

from switchboard.gateway.ami import (
    AMIAuthError,
    AMIClient,
    AMIConnectionError,
    encode_action,
    parse_message,
    read_message,
)
from switchboard.gateway.models import AMIResponse

SECRET = "s3cret"


# ── Fake gateway ─────────────────────────────────────────────────────────────


class _FakeAMIHandler(socketserver.StreamRequestHandler):
    """Speaks just enough AMI: banner, Login, Ping, CoreStatus, Hangup."""

    def _send(self, **fields: str) -> None:
        lines = [f"{k}: {v}" for k, v in fields.items()]
        self.wfile.write(("\r\n".join(lines) + "\r\n\r\n").encode())

    def handle(self) -> None:
        self.wfile.write(b"Asterisk Call Manager/7.0.3\r\n")
        while True:
            message = read_message(self.rfile)
            if message is None:
                return
            action = message.get("Action")
            action_id = message.get("ActionID", "")

            if action == "Login":
                if message.get("Secret") == SECRET:
                    self._send(Response="Success", ActionID=action_id, Message="Authentication accepted")
                else:
                    self._send(Response="Error", ActionID=action_id, Message="Authentication failed")
            elif action == "Ping":
                # An unsolicited event sneaks in before the response
                self._send(Event="PeerStatus", Peer="PJSIP/1001", PeerStatus="Reachable")
                self._send(Response="Success", ActionID=action_id, Ping="Pong")
            elif action == "CoreStatus":
                self._send(Response="Success", ActionID=action_id, CoreCurrentCalls="3")
            elif action == "Hangup":
                return
            else:
                self._send(Response="Error", ActionID=action_id, Message="Invalid/unknown command")


@pytest.fixture
def gateway_server():
    server = socketserver.ThreadingTCPServer(("127.0.0.1", 0), _FakeAMIHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


def _client(server, secret: str = SECRET) -> AMIClient:
    host, port = server.server_address
    return AMIClient(host, port, "admin", secret, timeout=2.0)


# ── Codec ────────────────────────────────────────────────────────────────────


class TestCodec:
    def test_encode_action(self) -> None:
        data = encode_action("Login", "7", {"Username": "admin", "Events": "off"})
        assert data == b"Action: Login\r\nActionID: 7\r\nUsername: admin\r\nEvents: off\r\n\r\n"

    def test_parse_message(self) -> None:
        message = parse_message(["Response: Success", "Message: Pong: ok", "garbage"])
        assert message == {"Response": "Success", "Message": "Pong: ok"}

    def test_read_message_sequence(self) -> None:
        stream = io.BytesIO(b"\r\nEvent: FullyBooted\r\n\r\nResponse: Success\r\nActionID: 1\r\n\r\n")
        assert read_message(stream) == {"Event": "FullyBooted"}
        assert read_message(stream) == {"Response": "Success", "ActionID": "1"}
        assert read_message(stream) is None

    def test_read_message_truncated(self) -> None:
        assert read_message(io.BytesIO(b"Response: Success\r\n")) == {"Response": "Success"}


class TestAMIResponse:
    def test_success(self) -> None:
        r = AMIResponse.from_message({"Response": "Success", "ActionID": "3", "Ping": "Pong"})
        assert r.success
        assert r.action_id == "3"
        assert r.error == ""
        assert r.fields == {"Ping": "Pong"}

    def test_error_uses_message(self) -> None:
        r = AMIResponse.from_message({"Response": "Error", "Message": "Permission denied"})
        assert not r.success
        assert r.error == "Permission denied"

    def test_error_without_message(self) -> None:
        r = AMIResponse.from_message({"Response": "Error"})
        assert r.error


# ── Client ───────────────────────────────────────────────────────────────────


class TestAMIClient:
    def test_connect_and_ping(self, gateway_server) -> None:
        client = _client(gateway_server)
        try:
            client.connect()
            assert client.is_connected()
            assert client.banner.startswith("Asterisk Call Manager")
            first_contact = client.last_ping()
            assert first_contact is not None

            response = client.send_command("Ping")
            assert response.success
            assert response.fields["Ping"] == "Pong"
            assert client.last_ping() >= first_contact
        finally:
            client.close()
        assert not client.is_connected()

    def test_core_status(self, gateway_server) -> None:
        client = _client(gateway_server)
        try:
            client.connect()
            response = client.send_command("CoreStatus")
            assert response.success
            assert response.fields["CoreCurrentCalls"] == "3"
        finally:
            client.close()

    def test_negative_ack_keeps_link(self, gateway_server) -> None:
        client = _client(gateway_server)
        try:
            client.connect()
            before = client.last_ping()
            response = client.send_command("Reload")
            assert not response.success
            assert response.error == "Invalid/unknown command"
            assert client.is_connected()
            assert client.last_ping() == before
        finally:
            client.close()

    def test_bad_secret(self, gateway_server) -> None:
        client = _client(gateway_server, secret="wrong")
        with pytest.raises(AMIAuthError, match="Authentication failed"):
            client.connect()
        assert not client.is_connected()
        assert client.last_ping() is None

    def test_dropped_link(self, gateway_server) -> None:
        client = _client(gateway_server)
        client.connect()
        with pytest.raises(AMIConnectionError):
            client.send_command("Hangup")
        assert not client.is_connected()

    def test_unreachable(self) -> None:
        # Grab a free port and close it so nothing listens there
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        client = AMIClient("127.0.0.1", port, "admin", SECRET, timeout=0.5)
        with pytest.raises(AMIConnectionError):
            client.connect()

    def test_silent_gateway_releases_socket(self) -> None:
        with socket.socket() as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            port = listener.getsockname()[1]

            client = AMIClient("127.0.0.1", port, "admin", SECRET, timeout=0.2)
            with pytest.raises(AMIConnectionError, match="no greeting"):
                client.connect()

            conn, _ = listener.accept()
            with conn:
                conn.settimeout(2.0)
                # EOF on the server side: the client closed its end
                assert conn.recv(1) == b""
        assert not client.is_connected()

    def test_banner_failure_closes_handles(self) -> None:
        sock = MagicMock()
        reader = sock.makefile.return_value
        reader.readline.side_effect = TimeoutError("timed out")
        client = AMIClient("127.0.0.1", 5038, "admin", SECRET)

        with patch("switchboard.gateway.ami.socket.create_connection", return_value=sock):
            with pytest.raises(AMIConnectionError):
                client.connect()

        reader.close.assert_called_once()
        sock.close.assert_called_once()

    def test_send_when_not_connected(self) -> None:
        client = AMIClient("127.0.0.1", 5038, "admin", SECRET)
        with pytest.raises(AMIConnectionError):
            client.send_command("Ping")

    def test_address(self) -> None:
        assert AMIClient("172.20.10.5", 5038, "admin", SECRET).address == "172.20.10.5:5038"
