import json

import pytest

import main as cli
from loggers import DEBUG_LOGGER
from models import FoundVideo
from submanagers import DatabaseConfig


@pytest.fixture(autouse=True)
def isolated_db(tmp_path, monkeypatch):
    db_path = str(tmp_path / "scrimm.db")
    monkeypatch.setattr(cli, "DatabaseConfig", lambda: DatabaseConfig(path=db_path))
    monkeypatch.setattr(cli.config, "ensure_app_dirs", lambda: None)
    yield
    DEBUG_LOGGER.echo = False


def test_providers_lists_bundled_file(capsys):
    assert cli.main(["--quiet", "providers"]) == 0
    out = capsys.readouterr().out
    assert "YouTube: https://www.youtube.com/results?search_query=" in out


def test_recents_empty_json(capsys):
    assert cli.main(["--quiet", "recents", "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == []


def test_recents_lists_and_clears(capsys):
    recents = cli._open_recents()
    recents.add_or_update(FoundVideo("Clip", "https://v.example/clip.mp4"))
    recents.update_playback_time("https://v.example/clip.mp4", 4.0)

    assert cli.main(["--quiet", "recents", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data[0]["urlString"] == "https://v.example/clip.mp4"
    assert data[0]["playbackTime"] == 4.0

    assert cli.main(["--quiet", "recents", "--clear"]) == 0
    capsys.readouterr()
    assert cli.main(["--quiet", "recents"]) == 0
    assert "(no recents)" in capsys.readouterr().out


def test_probe_prints_first_video(monkeypatch, capsys):
    html = '<html><title>T</title><video src="/m/v.mp4"></video></html>'
    monkeypatch.setattr(cli.StaticPageProbe, "fetch", lambda self, url: (url, html))
    assert cli.main(["--quiet", "probe", "site.example/watch", "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["videoURL"] == "https://site.example/m/v.mp4"
    assert data["pageTitle"] == "T"


def test_probe_without_video_exits_1(monkeypatch, capsys):
    monkeypatch.setattr(cli.StaticPageProbe, "fetch", lambda self, url: (url, "<p>none</p>"))
    assert cli.main(["--quiet", "probe", "https://site.example/"]) == 1


def test_bad_extra_value_exits_1(capsys):
    rc = cli.main(["--quiet", "detect", "https://site.example/", "--extra", "session.poll_ms=fast"])
    assert rc == 1
    assert "Error" in capsys.readouterr().err
