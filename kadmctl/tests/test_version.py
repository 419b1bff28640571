"""
Test kadmctl.modules.kubeadm.version
"""
import pytest

from kadmctl.modules.kubeadm.version import (
    CONFIG_FILE_RULE,
    FLAG_RULE,
    KUBEADM_V1BETA1,
    KUBEADM_V1BETA2,
    KUBEADM_V1BETA3,
    CommandFamily,
    Quirk,
    check_certs_command,
    normalize_version,
    parse_version,
    resolve_rule,
    version_at_least,
)


@pytest.mark.parametrize("version,family,api_version", [
    ("v1.14.9", CommandFamily.FLAGS, KUBEADM_V1BETA1),
    ("v1.15.0", CommandFamily.CONFIG_FILE, KUBEADM_V1BETA2),
    ("1.15.0", CommandFamily.CONFIG_FILE, KUBEADM_V1BETA2),
    ("v1.22.17", CommandFamily.CONFIG_FILE, KUBEADM_V1BETA2),
    ("v1.23.0", CommandFamily.CONFIG_FILE, KUBEADM_V1BETA3),
])
def test_family_around_threshold(version, family, api_version):
    rule = resolve_rule(version)
    assert rule.family is family
    assert rule.kubeadm_api_version == api_version


def test_unparseable_version_falls_back_to_flags(caplog):
    rule = resolve_rule("latest")
    assert rule is FLAG_RULE
    assert "failed to compare Kubernetes version" in caplog.text


def test_parse_version():
    assert parse_version("v1.19.2") == (1, 19, 2)
    assert parse_version("1.20.0-rc.1") == (1, 20, 0)
    assert parse_version("") is None
    assert parse_version("one.two") is None
    assert normalize_version("1.19.1") == "v1.19.1"


def test_version_at_least_ignores_garbage():
    assert version_at_least("v1.15.0", "v1.15.0")
    assert not version_at_least("v1.14.99", "v1.15.0")
    assert not version_at_least("garbage", "v1.15.0")


def test_known_quirks_only_on_affected_versions():
    assert Quirk.CONTROL_PLANE_ENDPOINT_KUBECONFIG in resolve_rule("v1.19.1").known_quirks
    assert Quirk.CONTROL_PLANE_ENDPOINT_KUBECONFIG in resolve_rule("1.19.2").known_quirks
    assert not resolve_rule("v1.19.3").known_quirks
    # the shared rule is never mutated
    assert not CONFIG_FILE_RULE.known_quirks


def test_check_certs_command():
    assert check_certs_command("v1.19.16") == "kubeadm alpha certs check-expiration"
    assert check_certs_command("v1.20.0") == "kubeadm certs check-expiration"
