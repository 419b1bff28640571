"""
Test kadmctl.cli
"""
import pytest
from typer.testing import CliRunner

from kadmctl.cli import app
from kadmctl.modules import cluster
from kadmctl.modules.clusterfile import Clusterfile
from kadmctl.modules.kubeadm import UnreachableHostError, set_config

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_config():
    yield
    set_config(None)


def _clusterfile(masters, nodes=()):
    return Clusterfile.model_validate({
        'metadata': {'name': 'test'},
        'spec': {'kubeVersion': 'v1.23.0', 'masters': list(masters), 'nodes': list(nodes)},
    })


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("init", "join", "delete", "serve", "certs"):
        assert command in result.stdout


def test_join_passes_host_lists(monkeypatch):
    calls = {}

    def fake_join(path, masters=(), nodes=()):
        calls.update(path=path, masters=masters, nodes=nodes)
        return _clusterfile(['10.0.0.1', '10.0.0.2'], ['10.0.2.1'])

    monkeypatch.setattr(cluster, "join_cluster", fake_join)
    result = runner.invoke(app, ["join", "-f", "Clusterfile", "--masters", "10.0.0.2, ", "--nodes", "10.0.2.1"])

    assert result.exit_code == 0, result.stdout
    assert calls == {'path': 'Clusterfile', 'masters': ['10.0.0.2'], 'nodes': ['10.0.2.1']}
    assert "2 master(s) and 1 node(s)" in result.stdout


def test_join_requires_hosts():
    result = runner.invoke(app, ["join", "-f", "Clusterfile"])
    assert result.exit_code == 1


def test_operation_error_exits_non_zero(monkeypatch):
    def fake_join(path, masters=(), nodes=()):
        raise UnreachableHostError("not reachable after 6 attempts", host='10.0.0.2', stage='wait_reachable')

    monkeypatch.setattr(cluster, "join_cluster", fake_join)
    result = runner.invoke(app, ["join", "-f", "Clusterfile", "-m", "10.0.0.2"])

    assert result.exit_code == 1
    assert "host=10.0.0.2" in result.output


def test_delete_asks_for_confirmation(monkeypatch):
    called = []
    monkeypatch.setattr(cluster, "delete_from_cluster", lambda *a, **kw: called.append(a) or {})

    result = runner.invoke(app, ["delete", "-f", "Clusterfile", "-n", "10.0.2.1"], input="n\n")
    assert "Deletion cancelled" in result.stdout
    assert called == []

    result = runner.invoke(app, ["delete", "-f", "Clusterfile", "-n", "10.0.2.1", "--force"])
    assert result.exit_code == 0
    assert len(called) == 1


def test_missing_config_file(tmp_path):
    result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "init", "-f", "Clusterfile"])
    assert result.exit_code == 1


def test_malformed_kubeadm_config_is_reported(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(f"runtime:\n  base_path: {tmp_path}\n")
    (tmp_path / "test").mkdir()
    (tmp_path / "test" / "kubeadm.yml").write_text("kind: [JoinConfiguration\n")
    clusterfile = tmp_path / "Clusterfile"
    _clusterfile(['10.0.0.1']).save(clusterfile)

    result = runner.invoke(app, ["--config", str(config), "join", "-f", str(clusterfile), "-m", "10.0.0.2"])

    assert result.exit_code == 1
    assert "❌" in result.output
    assert "stage=ensure_bootstrap_config" in result.output
