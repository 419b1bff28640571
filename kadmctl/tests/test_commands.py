"""
Test kadmctl.modules.kubeadm.commands
"""
import pytest

from kadmctl.modules.kubeadm.commands import (
    REMOTE_COPY_KUBECONFIG,
    REMOTE_NON_ROOT_COPY_KUBECONFIG,
    REMOVE_KUBECONFIG,
    PreflightLevel,
    add_hosts_command,
    build_command,
    clean_master_host_commands,
    clean_worker_host_commands,
    join_master_host_commands,
    registry_cert_destinations,
    write_file_command,
)
from kadmctl.modules.kubeadm.errors import CommandBuildError, UnsupportedRoleError
from kadmctl.modules.kubeadm.models import ClusterState, CommandRole, RegistryConfig
from kadmctl.modules.kubeadm.version import CommandFamily

ROOTFS = '/var/lib/kadmctl/rootfs'


@pytest.fixture
def state():
    state = ClusterState(name='test', kube_version='v1.14.9', masters=['10.0.0.1', '10.0.0.2'])
    state.set_credentials('tok.en', 'sha256:abc', 'certkey')
    return state


def test_flag_family_join_master(state, runtime_config):
    cmd = build_command('v1.14.9', CommandRole.JOIN_MASTER, state, runtime_config)
    assert cmd.family is CommandFamily.FLAGS
    assert cmd.config_path is None
    assert cmd.render() == (
        'kubeadm join 10.0.0.1:6443 --token tok.en --discovery-token-ca-cert-hash sha256:abc '
        '--experimental-control-plane --certificate-key certkey -v 0 '
        '--ignore-preflight-errors=SystemVerification'
    )


def test_flag_family_join_node_uses_vip(state, runtime_config):
    cmd = build_command('v1.14.9', CommandRole.JOIN_NODE, state, runtime_config)
    assert cmd.render() == (
        f'kubeadm join {state.vip}:6443 --token tok.en --discovery-token-ca-cert-hash sha256:abc -v 0'
    )
    assert cmd.preflight is PreflightLevel.STRICT


def test_config_file_family(state, runtime_config):
    init = build_command('v1.23.0', CommandRole.INIT_MASTER, state, runtime_config)
    join = build_command('v1.23.0', CommandRole.JOIN_MASTER, state, runtime_config)
    assert init.render() == (
        f'kubeadm init --config={ROOTFS}/etc/kubeadm.yml --upload-certs -v 0 '
        '--ignore-preflight-errors=SystemVerification'
    )
    assert join.base == f'kubeadm join --config={ROOTFS}/etc/kubeadm.yml'
    assert join.config_path == f'{ROOTFS}/etc/kubeadm.yml'


def test_init_below_threshold_uses_experimental_flag(state, runtime_config):
    cmd = build_command('v1.14.9', CommandRole.INIT_MASTER, state, runtime_config)
    assert '--experimental-upload-certs' in cmd.render()


def test_in_container_ignores_all_preflight(state, runtime_config):
    cmd = build_command('v1.23.0', CommandRole.JOIN_NODE, state, runtime_config, in_container=True)
    assert cmd.render().endswith('-v 0 --ignore-preflight-errors=all')


def test_vlog_is_rendered(state, runtime_config):
    runtime_config.runtime.vlog = 5
    cmd = build_command('v1.23.0', CommandRole.JOIN_NODE, state, runtime_config)
    assert cmd.render() == f'kubeadm join --config={ROOTFS}/etc/kubeadm.yml -v 5'


def test_unsupported_role(state, runtime_config):
    with pytest.raises(UnsupportedRoleError):
        build_command('v1.23.0', 'deleteMaster', state, runtime_config)


def test_flag_family_without_credentials(runtime_config):
    state = ClusterState(name='test', kube_version='v1.14.9', masters=['10.0.0.1'])
    with pytest.raises(CommandBuildError, match='token'):
        build_command('v1.14.9', CommandRole.JOIN_MASTER, state, runtime_config)
    # config-file commands carry credentials in the file
    build_command('v1.16.0', CommandRole.JOIN_MASTER, state, runtime_config)


def test_join_master_host_commands_order(state, runtime_config):
    state.registry = RegistryConfig(ip='10.0.0.1', username='admin', password='secret')
    join_cmd = build_command('v1.23.0', CommandRole.JOIN_MASTER, state, runtime_config)
    commands = join_master_host_commands(state, '10.0.0.2', join_cmd, 'certgen', non_root=True)

    assert commands[0].startswith("cat /etc/hosts |grep '10.0.0.1 registry.cluster.local'")
    assert 'hub.cluster.local' in commands[0]
    assert commands[1] == 'certgen'
    assert commands[2] == add_hosts_command('10.0.0.1', state.api_server_domain)
    assert commands[3].startswith('docker login registry.cluster.local:5000')
    assert commands[4] == join_cmd.render()
    assert 's/10.0.0.1 apiserver.cluster.local/10.0.0.2 apiserver.cluster.local/g' in commands[5]
    assert commands[6:] == (REMOTE_COPY_KUBECONFIG, REMOTE_NON_ROOT_COPY_KUBECONFIG)


def test_clean_master_local_host_keeps_api_server_entry(state):
    remote = clean_master_host_commands(state, 0, is_local=False)
    local = clean_master_host_commands(state, 0, is_local=True, api_server_ip='10.0.0.2')
    assert remote[-1] == REMOVE_KUBECONFIG
    assert local[-1] == add_hosts_command('10.0.0.2', state.api_server_domain)
    assert REMOVE_KUBECONFIG not in local


def test_cleanup_skips_empty_registry_alias():
    state = ClusterState(
        name='test',
        kube_version='v1.14.9',
        masters=['10.0.0.1'],
        registry=RegistryConfig(domain='reg.local', alias=''),
    )
    for commands in (clean_master_host_commands(state, 0, is_local=False), clean_worker_host_commands(state, 0)):
        assert 'sed -i "//d" /etc/hosts' not in commands
        assert 'rm -rf /etc/docker/certs.d/*' not in commands
        assert 'sed -i "/reg.local/d" /etc/hosts' in commands
        assert commands[-1] == REMOVE_KUBECONFIG


def test_cleanup_removes_registry_alias():
    state = ClusterState(
        name='test',
        kube_version='v1.14.9',
        masters=['10.0.0.1'],
        registry=RegistryConfig(domain='reg.local', alias='hub.local'),
    )
    commands = clean_worker_host_commands(state, 0)
    assert 'sed -i "/hub.local/d" /etc/hosts' in commands
    assert 'rm -rf /etc/docker/certs.d/hub.local*' in commands


def test_registry_cert_destinations():
    registry = RegistryConfig(domain='reg.local', alias='hub.local', port=5000)
    assert registry_cert_destinations(registry) == [
        '/etc/docker/certs.d/reg.local:5000/reg.local.crt',
        '/etc/docker/certs.d/hub.local:5000/reg.local.crt',
    ]
    same = RegistryConfig(domain='reg.local', alias='reg.local')
    assert len(registry_cert_destinations(same)) == 1


def test_write_file_command_uses_quoted_heredoc():
    cmd = write_file_command('/etc/kubernetes/kubeadm.yml', 'a: $HOME\n')
    assert cmd.startswith('mkdir -p /etc/kubernetes && cat > /etc/kubernetes/kubeadm.yml')
    assert "<<'KADMCTL_EOF'\na: $HOME\nKADMCTL_EOF" in cmd
