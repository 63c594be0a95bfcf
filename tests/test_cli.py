import pytest
import requests

import app as cli
from conftest import printer


@pytest.fixture(autouse=True)
def _no_log_setup(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)


def test_default_command_is_serve():
    args = cli.parse_args([])
    assert args.command == "serve"
    assert args.host == "127.0.0.1"


def test_printers_command_lists_default_first_marker(monkeypatch, capsys):
    import print_agent.printing.orchestrator as orch

    monkeypatch.setattr(orch, "list_available_printers", lambda: [printer("XP-80C", is_default=True), printer("Office")])
    assert cli.main(["printers"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("* XP-80C")
    assert out[1].startswith("  Office")


def test_test_print_command_reports_failure(monkeypatch, capsys):
    import print_agent.printing.orchestrator as orch

    monkeypatch.setattr(
        orch,
        "trigger_test_print",
        lambda settings, base_url=None: {"success": False, "error": "Printer offline", "kind": "print_failed"},
    )
    assert cli.main(["test-print"]) == 1
    assert "Printer offline" in capsys.readouterr().out


def test_test_print_command_agent_down(monkeypatch):
    import print_agent.printing.orchestrator as orch

    def _down(settings, base_url=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(orch, "trigger_test_print", _down)
    assert cli.main(["test-print", "--port", "4999"]) == 1


def test_open_logs_opens_browser(monkeypatch):
    opened = []
    monkeypatch.setattr(cli.webbrowser, "open", opened.append)
    assert cli.main(["open-logs"]) == 0
    assert opened == ["http://localhost:4000/logs"]


def test_trigger_test_print_posts_to_print(monkeypatch):
    from print_agent.core.config import AgentSettings
    from print_agent.printing.orchestrator import trigger_test_print

    seen = {}

    class _Resp:
        def json(self):
            return {"success": True, "printer": "XP-80C Main", "durationMs": 5}

    def _post(url, json=None, timeout=None):
        seen["url"] = url
        seen["json"] = json
        return _Resp()

    monkeypatch.setattr(requests, "post", _post)
    result = trigger_test_print(AgentSettings(port=4321))
    assert result["success"] is True
    assert seen["url"] == "http://localhost:4321/print"
    assert "Test Print" in seen["json"]["html"]
