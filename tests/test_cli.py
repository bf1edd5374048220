from typer.testing import CliRunner

from deploy_manager.cli import app
from deploy_manager.errors import ConfigNotFoundError
from tests.test_config import DEPLOYMENT, write

runner = CliRunner()


def test_show_parses_deployment(tmp_path):
    result = runner.invoke(app, ["show", str(write(tmp_path, DEPLOYMENT))])
    assert result.exit_code == 0, result.output


def test_missing_file_raises_deploy_error(tmp_path):
    result = runner.invoke(app, ["show", str(tmp_path / "missing.yaml")])
    assert isinstance(result.exception, ConfigNotFoundError)


def test_delete_invokes_kind(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(
        "deploy_manager.cluster.KindCluster.delete", lambda self: calls.append(self.get_name()),
    )
    result = runner.invoke(app, ["delete", str(write(tmp_path, DEPLOYMENT))])
    assert result.exit_code == 0, result.output
    assert calls == ["kne"]
