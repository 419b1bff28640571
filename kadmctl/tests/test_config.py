import pytest
import yaml

from kadmctl.logging import redact, redact_command
from kadmctl.modules.kubeadm.config import RuntimeConfig, get_config, set_config


def test_load_merges_file_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        'ssh': {'user': 'ubuntu', 'port': 2222},
        'runtime': {'vlog': 5, 'rootfs': '/opt/rootfs'},
    }))

    config = RuntimeConfig.load(path)

    assert config.ssh.user == 'ubuntu'
    assert config.ssh.port == 2222
    assert config.runtime.vlog == 5
    assert config.runtime.rootfs == '/opt/rootfs'
    assert config.runtime.cert_tool == 'bin/kube-certgen'


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        RuntimeConfig.load(tmp_path / "absent.yaml")


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("ssh: [unclosed")

    config = RuntimeConfig.load(path)

    assert config.ssh.user == 'root'


def test_save_then_load(tmp_path):
    config = RuntimeConfig()
    config.runtime.vlog = 3
    path = tmp_path / "nested" / "config.yaml"

    config.save(path)

    assert RuntimeConfig.load(path).runtime.vlog == 3


def test_cluster_dir_is_below_base_path(tmp_path):
    config = RuntimeConfig(runtime={'base_path': str(tmp_path)})
    assert config.runtime.cluster_dir('prod') == str(tmp_path / 'prod')


def test_set_config_replaces_global():
    custom = RuntimeConfig(runtime={'vlog': 7})
    set_config(custom)
    try:
        assert get_config() is custom
    finally:
        set_config(None)


def test_redact_hides_secrets_recursively():
    data = {'user': 'root', 'password': 'pw', 'nested': [{'token': 't', 'host': 'h'}]}

    assert redact(data) == {
        'user': 'root',
        'password': '[REDACTED]',
        'nested': [{'token': '[REDACTED]', 'host': 'h'}],
    }


def test_redact_command_masks_secret_flags():
    command = (
        "kubeadm join 10.0.0.1:6443 --token abc.def --discovery-token-ca-cert-hash sha256:1 "
        "--certificate-key=ffee --upload-certs -v 0"
    )

    assert redact_command(command) == (
        "kubeadm join 10.0.0.1:6443 --token [REDACTED] --discovery-token-ca-cert-hash [REDACTED] "
        "--certificate-key=[REDACTED] --upload-certs -v 0"
    )
    assert redact_command("mkdir -p /etc/kubernetes") == "mkdir -p /etc/kubernetes"
