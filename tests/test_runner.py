"""Tests for the typer CLI."""

import httpx
import pytest
from typer.testing import CliRunner

from notification_gateway import runner

cli = CliRunner()


class TestSend:
    """Tests for the `send` command."""

    def test_posts_notification(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test the command builds the request body from its options."""
        captured = {}

        def fake_post(url, json):
            captured["url"] = url
            captured["json"] = json
            return httpx.Response(202, json={"success": True, "message": "Notification request accepted"})

        monkeypatch.setattr(runner.httpx, "post", fake_post)

        result = cli.invoke(
            runner.app,
            ["send", "--type", "push", "--user-id", "42", "--template", "WELCOME", "--var", "name=Ana", "--port", "3000"],
        )

        assert result.exit_code == 0
        assert captured["url"] == "http://127.0.0.1:3000/api/v1/notifications"
        assert captured["json"] == {
            "notification_type": "push",
            "user_id": "42",
            "template_code": "WELCOME",
            "variables": {"name": "Ana"},
        }
        assert "202" in result.output

    def test_error_status_exits_nonzero(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a rejected request fails the command."""
        monkeypatch.setattr(
            runner.httpx, "post",
            lambda url, json: httpx.Response(400, json={"success": False, "error": "Invalid notification_type"}),
        )

        result = cli.invoke(runner.app, ["send", "--type", "sms", "--user-id", "1", "--template", "T"])

        assert result.exit_code == 1

    def test_bad_variable_rejected(self) -> None:
        """Test --var must be KEY=VALUE."""
        result = cli.invoke(runner.app, ["send", "--user-id", "1", "--template", "T", "--var", "oops"])

        assert result.exit_code != 0


class TestHealth:
    """Tests for the `health` command."""

    def test_prints_both_probes(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test liveness and readiness are both queried."""
        responses = {
            "http://127.0.0.1:3000/health": httpx.Response(200, json={"status": "ok"}),
            "http://127.0.0.1:3000/ready": httpx.Response(503, json={"status": "not_ready"}),
        }
        monkeypatch.setattr(runner.httpx, "get", lambda url: responses[url])

        result = cli.invoke(runner.app, ["health", "--port", "3000"])

        assert result.exit_code == 0
        assert "/health 200" in result.output
        assert "/ready 503" in result.output
