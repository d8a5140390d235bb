import json
import sys

import httpx
import pytest

from poissonarr import cli


def run_main(monkeypatch, *argv):
    monkeypatch.setattr(sys, "argv", ["poissonarr", *argv])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    return exc.value.code


@pytest.fixture
def posted(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        request = httpx.Request("POST", url)
        return httpx.Response(200, json={"ok": True}, request=request)

    monkeypatch.setattr(cli.httpx, "post", fake_post)
    return calls


def test_send_parses_json_value(monkeypatch, posted, capsys):
    code = run_main(monkeypatch, "send", "set-task-weights", '{"search": 10}', "--url", "http://engine:9000/")

    assert code == 0
    assert posted == [
        ("http://engine:9000/command", {"action": "set-task-weights", "value": {"search": 10}})
    ]
    assert json.loads(capsys.readouterr().out) == {"ok": True}


def test_send_bare_word_value_is_a_string(monkeypatch, posted):
    run_main(monkeypatch, "send", "set-intensity", "high")
    assert posted[0][1] == {"action": "set-intensity", "value": "high"}


def test_send_without_value(monkeypatch, posted):
    run_main(monkeypatch, "send", "get-status")
    assert posted[0][1] == {"action": "get-status"}


def test_send_reports_connection_errors(monkeypatch, capsys):
    def refuse(url, json=None, timeout=None):
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(cli.httpx, "post", refuse)
    assert run_main(monkeypatch, "send", "get-status") == 1
    assert "connection refused" in capsys.readouterr().err
