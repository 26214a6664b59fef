import json

from conftest import LIST_PAGE
from web_extractor import main as cli

CONFIG = """
settings:
  concurrency: 2
targets:
  - url: https://example.com
    selectors:
      - {id: h1Sel, name: Heading, path: h1, kind: text}
      - {id: listSel, name: Items, path: ul.items, kind: list, listItemPath: li}
"""


def test_cli_runs_job_and_exports(tmp_path, monkeypatch, capsys, make_service):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(CONFIG, encoding="utf-8")
    service, _ = make_service({"https://example.com": LIST_PAGE})
    monkeypatch.setattr(cli, "build_service", lambda settings: service)

    code = cli.main(["-c", str(cfg), "--export", "csv", "--output-dir", str(tmp_path / "out")])

    assert code == 0
    job = json.loads(capsys.readouterr().out)
    assert job["status"] == "completed"
    assert job["results"][0]["data"]["listSel"] == ["A", "B"]
    exported = list((tmp_path / "out").glob("job-*-results.csv"))
    assert len(exported) == 1


def test_cli_missing_config(tmp_path):
    assert cli.main(["-c", str(tmp_path / "nope.yaml")]) == 2


def test_cli_invalid_config(tmp_path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("targets: []\n", encoding="utf-8")
    assert cli.main(["-c", str(cfg)]) == 2


def test_cli_failed_target_exit_code(tmp_path, monkeypatch, capsys, make_service):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(CONFIG.replace("https://example.com", "http://192.168.1.5/admin"), encoding="utf-8")
    service, _ = make_service({})
    monkeypatch.setattr(cli, "build_service", lambda settings: service)
    assert cli.main(["-c", str(cfg)]) == 1
    assert "forbidden" in capsys.readouterr().out
