"""
Test kadmctl.modules.ssh
"""
import logging
from unittest import mock

import pytest

from kadmctl.modules.kubeadm.errors import CommandExecutionError
from kadmctl.modules.ssh import SSHExecutor


class _Channel:
    """Hands out scripted stdout and stderr chunks like a paramiko channel."""

    def __init__(self, status=0, out=(), err=()):
        self.status = status
        self.out = list(out)
        self.err = list(err)

    def recv_ready(self):
        return bool(self.out)

    def recv(self, size):
        return self.out.pop(0)

    def recv_stderr_ready(self):
        return bool(self.err)

    def recv_stderr(self, size):
        return self.err.pop(0)

    def exit_status_ready(self):
        return True

    def recv_exit_status(self):
        return self.status


def _channel(status=0, out=b'', err=b''):
    stdout = mock.MagicMock()
    stdout.channel = _Channel(status, [out] if out else [], [err] if err else [])
    return None, stdout, mock.MagicMock()


@pytest.fixture
def client():
    client = mock.MagicMock()
    client.get_transport.return_value.is_active.return_value = True
    return client


def _executor(user, client):
    executor = SSHExecutor(user=user)
    executor.connect = mock.MagicMock(return_value=client)
    return executor


def test_root_commands_run_as_is(client):
    client.exec_command.return_value = _channel(out=b'master-0\n')
    assert _executor('root', client).cmd('10.0.0.1', 'hostname') == 'master-0\n'
    client.exec_command.assert_called_once_with('hostname')


def test_non_root_commands_use_sudo(client):
    client.exec_command.return_value = _channel()
    _executor('ubuntu', client).cmd('10.0.0.1', "echo 'a b'")
    client.exec_command.assert_called_once_with("sudo -E /bin/bash -c 'echo '\"'\"'a b'\"'\"''")


def test_non_zero_exit_raises(client):
    client.exec_command.return_value = _channel(status=2, err=b'kubeadm: not found')
    with pytest.raises(CommandExecutionError, match='kubeadm: not found') as excinfo:
        _executor('root', client).cmd('10.0.0.1', 'kubeadm version')
    assert excinfo.value.host == '10.0.0.1'


def test_username():
    assert SSHExecutor(user='ubuntu').username('10.0.0.1') == 'ubuntu'


def test_stdout_and_stderr_are_read_together(client):
    stdout = mock.MagicMock()
    stdout.channel = _Channel(
        status=1,
        out=[b'[preflight] ok\n', b'[join] done\n'],
        err=[b'W1019 warning\n'] * 50,
    )
    client.exec_command.return_value = (None, stdout, mock.MagicMock())

    status, out, err = _executor('root', client)._exec('10.0.0.1', 'kubeadm join -v 9')

    assert status == 1
    assert out == '[preflight] ok\n[join] done\n'
    assert err.count('W1019 warning') == 50


def test_secrets_are_masked_in_errors_and_logs(client, caplog):
    client.exec_command.return_value = _channel(status=1, err=b'unauthorized')
    command = "docker login reg.local:5000 --username admin --password 's3cret'"

    with caplog.at_level(logging.DEBUG, logger='ssh'):
        with pytest.raises(CommandExecutionError) as excinfo:
            _executor('root', client).cmd('10.0.0.1', command)

    assert 's3cret' not in str(excinfo.value)
    assert 's3cret' not in caplog.text
    assert '--password [REDACTED]' in caplog.text
    client.exec_command.assert_called_once_with(command)
