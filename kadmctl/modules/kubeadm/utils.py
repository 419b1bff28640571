"""Utility functions for the kubeadm runtime."""
import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import CredentialFetchError

logger = logging.getLogger("kubeadm.utils")

CERTIFICATE_KEY_MARKER = 'Using certificate key:'

_TOKEN_RE = re.compile(r'--token\s+(\S+)')
_CA_CERT_HASH_RE = re.compile(r'--discovery-token-ca-cert-hash\s+(\S+)')
_CERTIFICATE_KEY_FLAG_RE = re.compile(r'--certificate-key\s+(\S+)')


def merge_dicts(base: Dict[Any, Any], override: Dict[Any, Any]) -> Dict[Any, Any]:
    """Recursively merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary with values to override

    Returns:
        dict: Merged dictionary
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_dicts(result[key], value)
        else:
            result[key] = value
    return result


def read_yaml_documents(path: str) -> List[Dict[str, Any]]:
    """Read every document of a multi-document YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the file is not valid YAML
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return [doc for doc in yaml.safe_load_all(f) if doc]
    except FileNotFoundError:
        logger.error(f"YAML file not found: {path}")
        raise
    except yaml.YAMLError as e:
        logger.error(f"Invalid YAML in {path}: {e}")
        raise


def dump_yaml_documents(documents: List[Dict[str, Any]]) -> str:
    """Marshal documents into one ``---`` delimited YAML string."""
    return yaml.safe_dump_all(
        [doc for doc in documents if doc],
        default_flow_style=False,
        sort_keys=False,
        explicit_start=True,
    )


def write_yaml_file(path: str, data: Dict[str, Any], mode: int = 0o600) -> None:
    """Write a YAML file with the given data.

    Raises:
        IOError: If the file cannot be written
    """
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        os.chmod(path, mode)
    except (IOError, OSError) as e:
        logger.error(f"Failed to write YAML file {path}: {e}")
        raise


def parse_certificate_key(output: str) -> str:
    """Extract the key printed by ``kubeadm init phase upload-certs``.

    Example output::

        [upload-certs] Storing the certificates in Secret "kubeadm-certs" in the "kube-system" Namespace
        [upload-certs] Using certificate key:
        8376c70aaaf285b764b3c1a588740728aff493d7c2239684e84a7367c6a437cf

    Raises:
        CredentialFetchError: If the marker does not split the output in exactly two
    """
    segments = (output or '').split(CERTIFICATE_KEY_MARKER)
    if len(segments) != 2:
        raise CredentialFetchError(f"failed to get certificate key: {segments}")
    key = segments[1].replace('\r\n', '').replace('\n', '').strip()
    if not key:
        raise CredentialFetchError("failed to get certificate key: empty key after marker")
    return key


def parse_join_command(output: str) -> Tuple[str, str, Optional[str]]:
    """Extract token, CA cert hash and optional certificate key.

    Works on ``kubeadm token create --print-join-command`` output and on the
    tail of ``kubeadm init`` output, including backslash-continued lines.

    Returns:
        tuple: (token, ca_cert_hash, certificate_key or None)

    Raises:
        CredentialFetchError: If token or hash is missing
    """
    text = (output or '').replace('\\\r\n', ' ').replace('\\\n', ' ')
    token = _TOKEN_RE.search(text)
    ca_hash = _CA_CERT_HASH_RE.search(text)
    if not token or not ca_hash:
        raise CredentialFetchError(f"failed to decode join command from output: {output!r}")
    cert_key = _CERTIFICATE_KEY_FLAG_RE.search(text)
    return token.group(1), ca_hash.group(1), cert_key.group(1) if cert_key else None


def parse_kubectl_output(output: str) -> List[Dict[str, str]]:
    """Parse tabular kubectl output into a list of dictionaries.

    Args:
        output: Raw kubectl command output

    Returns:
        List of dictionaries keyed by column header
    """
    if not output or not output.strip():
        return []

    lines = output.strip().split('\n')
    headers = lines[0].split()

    # trailing columns such as OS-IMAGE may contain spaces; leading ones never do
    result = []
    for line in lines[1:]:
        if not line.strip():
            continue
        parts = line.split()
        if len(parts) >= len(headers):
            result.append(dict(zip(headers, parts)))
    return result


def match_node_name(node_names: List[str], hostname: str) -> str:
    """Return the cluster node name matching ``hostname`` case-insensitively."""
    wanted = (hostname or '').strip().lower()
    if not wanted:
        return ''
    for name in node_names:
        if name.strip() and name.strip().lower() == wanted:
            return name.strip()
    return ''
