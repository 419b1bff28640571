"""
Test kadmctl.modules.cluster
"""
import pytest
import yaml

from kadmctl.modules import cluster
from kadmctl.modules.clusterfile import Clusterfile
from kadmctl.modules.kubeadm.errors import CommandExecutionError

from .conftest import FakeExecutor

CLUSTERFILE = """
apiVersion: kadmctl/v1
kind: Cluster
metadata:
  name: test
spec:
  kubeVersion: v1.23.0
  masters: [10.0.0.1]
  nodes: [10.0.2.1]
"""


def _write(tmp_path):
    path = tmp_path / 'Clusterfile'
    path.write_text(CLUSTERFILE)
    return path


def test_join_cluster_skips_members_and_saves(tmp_path, runtime_config):
    path = _write(tmp_path)
    executor = FakeExecutor()

    result = cluster.join_cluster(
        path, masters=['10.0.0.1', '10.0.0.2'], nodes=['10.0.2.1', '10.0.2.2'],
        config=runtime_config, executor=executor
    )

    assert result.spec.masters == ['10.0.0.1', '10.0.0.2']
    assert 'kubeadm join' not in ' '.join(executor.commands('10.0.2.1'))
    saved = yaml.safe_load(path.read_text())
    assert saved['spec']['masters'] == ['10.0.0.1', '10.0.0.2']
    assert saved['spec']['nodes'] == ['10.0.2.1', '10.0.2.2']


def test_join_cluster_nothing_to_do(tmp_path, runtime_config):
    path = _write(tmp_path)
    executor = FakeExecutor()
    cluster.join_cluster(path, masters=['10.0.0.1'], config=runtime_config, executor=executor)
    assert executor.all_commands() == []


def test_delete_from_cluster_saves_members(tmp_path, runtime_config):
    path = _write(tmp_path)
    executor = FakeExecutor(hostnames={'10.0.2.1': 'worker-1'})

    failures = cluster.delete_from_cluster(path, nodes=['10.0.2.1'], config=runtime_config, executor=executor)

    assert failures == {}
    assert Clusterfile.load(path).spec.nodes == []
    assert 'kubectl delete node WORKER-1' in executor.commands('10.0.0.1')


def test_build_executor_prefers_clusterfile_ssh(tmp_path, runtime_config):
    clusterfile = Clusterfile.load(_write(tmp_path))
    clusterfile.spec.ssh.user = 'ubuntu'
    executor = cluster.build_executor(clusterfile, runtime_config)
    assert executor.user == 'ubuntu'
    assert executor.port == runtime_config.ssh.port


def test_join_cluster_failure_saves_masters_that_joined(tmp_path, runtime_config):
    path = _write(tmp_path)
    executor = FakeExecutor()
    executor.fail_on('10.0.1.2', 'kubeadm join')

    with pytest.raises(CommandExecutionError):
        cluster.join_cluster(
            path, masters=['10.0.1.1', '10.0.1.2'], config=runtime_config, executor=executor
        )

    assert any(c.startswith('kubeadm join') for c in executor.commands('10.0.1.1'))
    assert Clusterfile.load(path).spec.masters == ['10.0.0.1', '10.0.1.1']
