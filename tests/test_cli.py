from typer.testing import CliRunner

import livepreview.server as server
from livepreview import __version__
from livepreview.cli import app

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_short_flag():
    result = runner.invoke(app, ["-h"])
    assert result.exit_code == 0
    assert "--port" in result.output


def test_serve_builds_config(tmp_path, monkeypatch):
    seen = {}

    def fake_run(config, open_in_browser=True):
        seen["config"] = config
        seen["open"] = open_in_browser

    monkeypatch.setattr(server, "run", fake_run)
    result = runner.invoke(
        app,
        [str(tmp_path), "-p", "9123", "--raw", "--format", "text/plain", "--no-open"],
    )
    assert result.exit_code == 0, result.output
    config = seen["config"]
    assert config.base_path == tmp_path
    assert config.is_directory_init
    assert config.port == 9123
    assert config.raw_mode
    assert config.content_type_override == "text/plain"
    assert seen["open"] is False
    assert "http://localhost:9123" in result.output


def test_bind_failure_exits_nonzero(tmp_path, monkeypatch):
    def busy(config, open_in_browser=True):
        raise OSError(98, "Address already in use")

    monkeypatch.setattr(server, "run", busy)
    result = runner.invoke(app, [str(tmp_path), "--no-open"])
    assert result.exit_code == 1
