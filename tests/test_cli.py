"""Tests for asana_connector.cli — argument handling and command output."""

import pytest

from conftest import TARGET, FakeWebhookAPI
import asana_connector.engine.logging as log_mod
from asana_connector.cli import main
from asana_connector.engine.logging import FileLogger
from asana_connector.engine.models import RemoteWebhook


class FakeClient(FakeWebhookAPI):
    """FakeWebhookAPI usable as ``async with AsanaClient(...)``."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()


@pytest.fixture(autouse=True)
def _run_in_tmp(tmp_path, monkeypatch):
    """Keep default-directory log files out of the working tree."""
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def config_path(project_root):
    return str(project_root / "asana.yaml")


class TestCheck:

    def test_valid_config(self, config_path, capsys):
        assert main(["--config", config_path, "check"]) == 0
        out = capsys.readouterr().out
        assert "[OK] Webhook target: https://hooks.example.com/asana-connector/webhook" in out
        assert "[OK] Workspace: 12345" in out

    def test_invalid_base_url(self, tmp_path, capsys):
        path = tmp_path / "asana.yaml"
        path.write_text("access_token: t\nbase_url: http://hooks.example.com\n", encoding="utf-8")
        assert main(["--config", str(path), "check"]) == 1
        assert "[ERROR] Invalid url: http://hooks.example.com" in capsys.readouterr().out

    def test_missing_token(self, tmp_path, capsys):
        path = tmp_path / "asana.yaml"
        path.write_text("base_url: https://hooks.example.com\n", encoding="utf-8")
        assert main(["--config", str(path), "check"]) == 1
        assert "[ERROR] Failed to load config" in capsys.readouterr().out

    def test_empty_asana_section(self, tmp_path, capsys):
        path = tmp_path / "asana.yaml"
        path.write_text("asana:\n", encoding="utf-8")
        assert main(["--config", str(path), "check"]) == 1
        assert "[ERROR] Failed to load config: asana.yaml must contain a mapping" in capsys.readouterr().out

    def test_env_overrides_file(self, config_path, monkeypatch, capsys):
        monkeypatch.setenv("ASANA_WEBHOOK_PATH", "/hooks/asana")
        assert main(["--config", config_path, "check"]) == 0
        assert "https://hooks.example.com/hooks/asana" in capsys.readouterr().out


class TestWebhooks:

    def test_lists_remote_webhooks(self, config_path, monkeypatch, capsys):
        fake = FakeClient(webhooks=[
            RemoteWebhook(gid="w1", resource_gid="r1", target=TARGET, active=True),
        ])
        monkeypatch.setattr("asana_connector.engine.client.AsanaClient", lambda *a, **kw: fake)
        assert main(["--config", config_path, "webhooks"]) == 0
        out = capsys.readouterr().out
        assert "1 webhook(s) in workspace 12345" in out
        assert "resource=r1" in out
        assert fake.calls == [("get_webhooks", "12345")]
        assert fake.closed


class TestReconcile:

    def test_creates_missing_webhooks(self, config_path, monkeypatch, capsys):
        fake = FakeClient()
        monkeypatch.setattr("asana_connector.connector.AsanaClient", lambda *a, **kw: fake)
        assert main(["--config", config_path, "reconcile", "--gid", "r1", "--gid", "r2"]) == 0
        out = capsys.readouterr().out
        assert "[OK] r1: created" in out
        assert "[OK] r2: created" in out
        assert [c[1] for c in fake.create_calls] == ["r1", "r2"]

    def test_writes_structured_logs_to_configured_directory(self, project_root, monkeypatch):
        fake = FakeClient(webhooks=[
            RemoteWebhook(gid="w1", resource_gid="r1", target=TARGET, active=True),
        ])
        monkeypatch.setattr("asana_connector.connector.AsanaClient", lambda *a, **kw: fake)
        assert main(["--config", str(project_root / "asana.yaml"), "reconcile", "--gid", "r1", "--gid", "r2"]) == 0

        assert log_mod.get_log_queue() is None
        file_logger = FileLogger(log_dir=str(project_root / "logs"))
        entries = file_logger.query("webhooks", "execution")
        assert [(e["event"], e["resource_gid"]) for e in entries] == [
            ("webhook_existing", "r1"),
            ("webhook_created", "r2"),
        ]
        assert file_logger.query("system", "execution")[0]["event"] == "connector_started"

    def test_inactive_webhook_fails_command(self, config_path, monkeypatch, capsys):
        fake = FakeClient(create_active=False)
        monkeypatch.setattr("asana_connector.connector.AsanaClient", lambda *a, **kw: fake)
        assert main(["--config", config_path, "reconcile", "--gid", "r1"]) == 1
        assert "[ERROR] r1: inactive" in capsys.readouterr().out

    def test_missing_workspace(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "asana.yaml"
        path.write_text("access_token: t\nbase_url: https://hooks.example.com\n", encoding="utf-8")
        monkeypatch.setattr("asana_connector.connector.AsanaClient", lambda *a, **kw: FakeClient())
        assert main(["--config", str(path), "reconcile", "--gid", "r1"]) == 1
        assert "[ERROR]" in capsys.readouterr().out

    def test_gid_required(self, config_path):
        with pytest.raises(SystemExit):
            main(["--config", config_path, "reconcile"])


class TestHelp:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "asana-connector" in capsys.readouterr().out
