"""Tests for the lnurlbridge CLI."""

import httpx
import pytest
import typer
from typer.testing import CliRunner

from lnurlbridge import __version__
from lnurlbridge.cli import main as cli_main
from lnurlbridge.cli.main import app, normalize_base_url
from tests.fakes import make_pubkey

runner = CliRunner()

K1 = "ab" * 32


@pytest.fixture
def routes():
    return {
        "/request-channel": {
            "uri": f"{make_pubkey(1)}@203.0.113.10:9735",
            "callback": "http://192.0.2.1:3000/open-channel",
            "k1": K1,
            "tag": "channelRequest",
        },
        "/open-channel": {"status": "OK", "channel_id": "cc" * 32, "txid": "dd" * 32, "outnum": 1},
        "/request-withdraw": {
            "callback": "http://192.0.2.1:3000/withdraw",
            "k1": K1,
            "tag": "withdrawRequest",
            "minWithdrawable": 1000,
            "maxWithdrawable": 1000000,
        },
        "/withdraw": {"status": "OK"},
        "/auth-challenge": {"k1": K1},
        "/auth-response": {"status": "OK", "event": "LOGGEDIN"},
    }


@pytest.fixture
def patched(monkeypatch, routes, wallet_node):
    """Point the CLI at the fake node and an in-memory server."""
    requested: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request)
        body = routes[request.url.path]
        status_code = 400 if body.get("status") == "ERROR" else 200
        return httpx.Response(status_code, json=body)

    monkeypatch.setattr(cli_main, "build_node_rpc", lambda settings: wallet_node)
    monkeypatch.setattr(
        cli_main,
        "build_http_client",
        lambda settings: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return requested


class TestNormalizeBaseUrl:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("http://192.0.2.1:3000/", "http://192.0.2.1:3000"),
            ("https://lnurl.example.com", "https://lnurl.example.com"),
            ("192.0.2.1:3000", "http://192.0.2.1:3000"),
            ("[2001:db8::1]:3000", "http://[2001:db8::1]:3000"),
            ("192.0.2.1", "http://192.0.2.1"),
            ("2001:db8::1", "http://[2001:db8::1]"),
        ],
    )
    def test_accepted_forms(self, raw, expected):
        assert normalize_base_url(raw) == expected

    @pytest.mark.parametrize(
        "raw", ["lnurl.example.com", "192.0.2.1:99999", "[2001:db8::1]:port", "not a url"]
    )
    def test_rejected_forms(self, raw):
        with pytest.raises(typer.BadParameter, match="Invalid URL or IP address"):
            normalize_base_url(raw)


class TestClientCommands:
    def test_request_channel(self, patched, wallet_node):
        result = runner.invoke(app, ["request-channel", "192.0.2.1:3000"])

        assert result.exit_code == 0, result.output
        assert "Channel opened" in result.output
        assert patched[0].url == "http://192.0.2.1:3000/request-channel"
        assert wallet_node.calls_to("connect")

    def test_request_withdraw(self, patched, wallet_node):
        result = runner.invoke(app, ["request-withdraw", "http://192.0.2.1:3000"])

        assert result.exit_code == 0, result.output
        assert "Received 1000000 msat" in result.output
        assert wallet_node.calls_to("invoice")[0]["description"] == "LNURL withdraw"

    def test_unpaid_withdraw_fails(self, patched, wallet_node):
        wallet_node.settlement_status = "expired"

        result = runner.invoke(app, ["request-withdraw", "192.0.2.1:3000"])

        assert result.exit_code == 1
        assert "status: expired" in result.output

    def test_auth(self, patched):
        result = runner.invoke(app, ["auth", "192.0.2.1:3000"])

        assert result.exit_code == 0, result.output
        assert "Authenticated as" in result.output
        assert "LOGGEDIN" in result.output

    def test_protocol_error_exits_1(self, patched, routes):
        routes["/auth-response"] = {"status": "ERROR", "reason": "Signature verification failed"}

        result = runner.invoke(app, ["auth", "192.0.2.1:3000"])

        assert result.exit_code == 1
        assert "Signature verification failed" in result.output

    def test_transport_error_exits_1(self, patched, routes):
        routes["/request-channel"] = {"status": "ERROR", "reason": "Node unavailable"}

        result = runner.invoke(app, ["request-channel", "192.0.2.1:3000"])

        assert result.exit_code == 1
        assert "HTTP error" in result.output

    def test_invalid_target(self, patched):
        result = runner.invoke(app, ["auth", "lnurl.example.com"])

        assert result.exit_code == 2
        assert patched == []


class TestServeCommand:
    def test_overrides_reach_the_server(self, monkeypatch):
        captured = {}
        monkeypatch.setattr(cli_main, "configure_logging", lambda *args: None)
        monkeypatch.setattr(
            "lnurlbridge.api.app.run_server", lambda settings: captured.update(settings=settings)
        )

        result = runner.invoke(
            app,
            [
                "serve",
                "--port",
                "8080",
                "--callback-base-url",
                "https://lnurl.example.com/",
                "--node-address",
                "203.0.113.10:9735",
            ],
        )

        assert result.exit_code == 0, result.output
        settings = captured["settings"]
        assert settings.port == 8080
        assert settings.callback_url("withdraw") == "https://lnurl.example.com/withdraw"
        assert settings.node_address == "203.0.113.10:9735"


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
