"""Tests for exec credential plugins."""

import json
import logging
import os
import subprocess
import sys
import threading
from datetime import UTC, datetime, timedelta

import pytest

from kubeclient_core.auth.exceptions import CredentialError, ExecPluginError
from kubeclient_core.auth.exec_plugin import (
    EXEC_INFO_ENV_VAR,
    ExecConfig,
    ExecCredentialProvider,
    ExecPluginRunner,
    SubprocessInvoker,
    parse_exec_credential,
)
from kubeclient_core.testing import StubInvoker, exec_credential_json

API_VERSION = "client.authentication.k8s.io/v1"


def _config(**kwargs) -> ExecConfig:
    kwargs.setdefault("api_version", API_VERSION)
    kwargs.setdefault("command", "get-token")
    return ExecConfig(**kwargs)


def _timestamp(delta: timedelta) -> str:
    return (datetime.now(UTC) + delta).strftime("%Y-%m-%dT%H:%M:%SZ")


class SequenceInvoker:
    """Returns one canned output per invocation."""

    def __init__(self, *outputs: bytes):
        self.outputs = list(outputs)
        self.calls = 0

    def invoke(self, command, args, env, timeout):
        self.calls += 1
        return self.outputs.pop(0)


class RaisingInvoker:
    def __init__(self, error: BaseException):
        self.error = error

    def invoke(self, command, args, env, timeout):
        raise self.error


@pytest.mark.unit
class TestParseExecCredential:
    def test_token(self):
        response = parse_exec_credential(exec_credential_json(token="abc"), API_VERSION)

        assert response.token == "abc"
        assert response.expiration_timestamp is None
        assert response.to_credential().authorization == "Bearer abc"

    def test_expiration_timestamp(self):
        output = exec_credential_json(token="abc", expiration_timestamp="2030-01-02T03:04:05Z")

        response = parse_exec_credential(output, API_VERSION)

        assert response.expiration_timestamp == datetime(2030, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_naive_timestamp_is_utc(self):
        output = exec_credential_json(token="abc", expiration_timestamp="2030-01-02T03:04:05")

        assert parse_exec_credential(output).expiration_timestamp.tzinfo is UTC

    def test_certificate_pair(self, pki):
        output = exec_credential_json(
            client_certificate_data=pki.client_chain.decode("ascii"),
            client_key_data=pki.client_key.decode("ascii"),
        )

        credential = parse_exec_credential(output, API_VERSION).to_credential()

        assert credential.authorization is None
        assert credential.certificate.chain_length == 2

    def test_mismatched_certificate_pair(self, pki):
        output = exec_credential_json(
            client_certificate_data=pki.client_cert.decode("ascii"),
            client_key_data=pki.rogue_key.decode("ascii"),
        )

        with pytest.raises(CredentialError, match="does not match"):
            parse_exec_credential(output, API_VERSION).to_credential()

    def test_api_version_mismatch(self):
        output = exec_credential_json(token="abc", api_version="client.authentication.k8s.io/v1beta1")

        with pytest.raises(ExecPluginError, match="does not match"):
            parse_exec_credential(output, API_VERSION)

    @pytest.mark.parametrize(
        ("output", "message"),
        [
            (b"not json", "not valid JSON"),
            (b"[]", "must be a JSON object"),
            (json.dumps({"apiVersion": API_VERSION}).encode(), "missing the 'status' object"),
            (json.dumps({"apiVersion": API_VERSION, "status": {}}).encode(), "missing 'token'"),
            (
                json.dumps({"apiVersion": API_VERSION, "status": {"clientCertificateData": "x"}}).encode(),
                "missing 'token'",
            ),
            (json.dumps({"apiVersion": API_VERSION, "status": {"token": 5}}).encode(), "'token' must be a string"),
            (
                json.dumps(
                    {"apiVersion": API_VERSION, "status": {"token": "a", "expirationTimestamp": "tomorrow"}}
                ).encode(),
                "invalid expirationTimestamp",
            ),
        ],
    )
    def test_invalid_output(self, output, message):
        with pytest.raises(ExecPluginError, match=message):
            parse_exec_credential(output, API_VERSION)


@pytest.mark.unit
class TestExecPluginRunner:
    def test_passes_command_args_and_env(self):
        invoker = StubInvoker(exec_credential_json(token="abc"))
        config = _config(command="aws", args=("eks", "get-token"), env={"AWS_PROFILE": "prod"})

        ExecPluginRunner(invoker).run(config)

        command, args, env = invoker.calls[0]
        assert command == "aws"
        assert args == ["eks", "get-token"]
        assert env["AWS_PROFILE"] == "prod"

    def test_exec_info_environment(self):
        invoker = StubInvoker(exec_credential_json(token="abc"))

        ExecPluginRunner(invoker).run(_config())

        exec_info = json.loads(invoker.calls[0][2][EXEC_INFO_ENV_VAR])
        assert exec_info["apiVersion"] == API_VERSION
        assert exec_info["kind"] == "ExecCredential"
        assert exec_info["spec"]["interactive"] is False

    def test_inherits_process_environment(self, monkeypatch):
        monkeypatch.setenv("TEST_INHERITED", "yes")
        invoker = StubInvoker(exec_credential_json(token="abc"))

        ExecPluginRunner(invoker).run(_config())

        assert invoker.calls[0][2]["TEST_INHERITED"] == "yes"

    def test_non_zero_exit(self):
        invoker = StubInvoker(returncode=3, stderr=b"error: not logged in\n")

        with pytest.raises(ExecPluginError) as exc_info:
            ExecPluginRunner(invoker).run(_config())

        assert exc_info.value.exit_code == 3
        assert exc_info.value.stderr == "error: not logged in"
        assert exc_info.value.command == "get-token"
        assert "not logged in" in str(exc_info.value)

    def test_missing_command_includes_install_hint(self):
        invoker = RaisingInvoker(FileNotFoundError(2, "No such file or directory", "get-token"))
        config = _config(install_hint="Install get-token with: brew install get-token")

        with pytest.raises(ExecPluginError, match="brew install get-token"):
            ExecPluginRunner(invoker).run(config)

    def test_timeout(self):
        invoker = RaisingInvoker(subprocess.TimeoutExpired(["get-token"], 60))

        with pytest.raises(ExecPluginError, match="timed out after 60s"):
            ExecPluginRunner(invoker).run(_config())

    def test_output_too_large(self):
        invoker = StubInvoker(b" " * 2048 + exec_credential_json(token="abc"))

        with pytest.raises(ExecPluginError, match="more than 1024 bytes"):
            ExecPluginRunner(invoker, max_output_bytes=1024).run(_config())

    def test_parse_error_carries_command(self):
        with pytest.raises(ExecPluginError) as exc_info:
            ExecPluginRunner(StubInvoker(b"garbage")).run(_config(command="broken-plugin"))

        assert exc_info.value.command == "broken-plugin"


@pytest.mark.unit
class TestExecCredentialProvider:
    def test_token_cached_without_expiry(self):
        invoker = StubInvoker(exec_credential_json(token="abc"))
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        assert provider.needs_refresh()
        first = provider.resolve()
        second = provider.resolve()

        assert first.authorization == "Bearer abc"
        assert second is first
        assert len(invoker.calls) == 1
        assert not provider.needs_refresh()

    def test_unexpired_token_reused(self):
        output = exec_credential_json(token="abc", expiration_timestamp=_timestamp(timedelta(hours=1)))
        invoker = StubInvoker(output)
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        for _ in range(3):
            provider.resolve()

        assert len(invoker.calls) == 1

    def test_expired_token_rerun(self):
        invoker = SequenceInvoker(
            exec_credential_json(token="old", expiration_timestamp=_timestamp(timedelta(hours=-1))),
            exec_credential_json(token="new", expiration_timestamp=_timestamp(timedelta(hours=1))),
        )
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        assert provider.resolve().authorization == "Bearer old"
        assert provider.needs_refresh()
        assert provider.resolve().authorization == "Bearer new"
        assert provider.resolve().authorization == "Bearer new"
        assert invoker.calls == 2

    def test_failure_not_cached(self):
        invoker = StubInvoker(returncode=1)
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        for _ in range(2):
            with pytest.raises(ExecPluginError):
                provider.resolve()

        assert len(invoker.calls) == 2

    def test_concurrent_resolution_runs_plugin_once(self):
        started = threading.Event()
        release = threading.Event()

        class BlockingInvoker(StubInvoker):
            def invoke(self, command, args, env, timeout):
                started.set()
                release.wait(5)
                return super().invoke(command, args, env, timeout)

        invoker = BlockingInvoker(exec_credential_json(token="abc"))
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        results = []
        threads = [threading.Thread(target=lambda: results.append(provider.resolve())) for _ in range(4)]
        threads[0].start()
        started.wait(5)
        for thread in threads[1:]:
            thread.start()
        release.set()
        for thread in threads:
            thread.join(5)

        assert len(invoker.calls) == 1
        assert [r.authorization for r in results] == ["Bearer abc"] * 4

    def test_logs_without_token(self, caplog):
        caplog.set_level(logging.DEBUG)
        invoker = StubInvoker(exec_credential_json(token="s3cr3t"))
        provider = ExecCredentialProvider(_config(), ExecPluginRunner(invoker))

        provider.resolve()

        assert "Obtained token from exec plugin get-token" in caplog.text
        assert "s3cr3t" not in caplog.text
        assert "s3cr3t" not in repr(provider)


@pytest.mark.integration
class TestSubprocessInvoker:
    """Runs real processes through the current interpreter."""

    def test_echo_plugin(self):
        output = exec_credential_json(token="from-process", api_version="testingversion").decode("utf-8")
        config = ExecConfig(
            api_version="testingversion",
            command=sys.executable,
            args=("-c", "import sys; sys.stdout.write(sys.argv[1])", output),
        )

        credential = ExecCredentialProvider(config).resolve()

        assert credential.authorization == "Bearer from-process"

    def test_plugin_sees_exec_info(self):
        script = (
            "import json, os, sys; info = json.loads(os.environ['KUBERNETES_EXEC_INFO']); "
            "sys.stdout.write(json.dumps({'apiVersion': info['apiVersion'], "
            "'status': {'token': os.environ['TEST_PLUGIN_VAR']}}))"
        )
        config = ExecConfig(
            api_version=API_VERSION,
            command=sys.executable,
            args=("-c", script),
            env={"TEST_PLUGIN_VAR": "from-env"},
        )

        assert ExecCredentialProvider(config).resolve().authorization == "Bearer from-env"

    def test_failing_plugin(self):
        config = ExecConfig(
            api_version=API_VERSION,
            command=sys.executable,
            args=("-c", "import sys; sys.stderr.write('expired session'); sys.exit(4)"),
        )

        with pytest.raises(ExecPluginError) as exc_info:
            ExecCredentialProvider(config).resolve()

        assert exc_info.value.exit_code == 4
        assert exc_info.value.stderr == "expired session"

    def test_missing_command(self, tmp_path):
        config = ExecConfig(
            api_version=API_VERSION,
            command=str(tmp_path / "no-such-plugin"),
            install_hint="See https://example.com/install",
        )

        with pytest.raises(ExecPluginError, match="could not be started") as exc_info:
            ExecCredentialProvider(config).resolve()

        assert "See https://example.com/install" in str(exc_info.value)

    def test_timeout(self):
        runner = ExecPluginRunner(SubprocessInvoker(), timeout=0.5)
        config = ExecConfig(api_version=API_VERSION, command=sys.executable, args=("-c", "import time; time.sleep(5)"))

        with pytest.raises(ExecPluginError, match="timed out"):
            runner.run(config)

    def test_endless_output_is_cut_off(self):
        """A plugin that never stops printing is killed once the limit is passed."""
        invoker = SubprocessInvoker(max_output_bytes=1024)
        script = "import sys\nwhile True:\n    sys.stdout.buffer.write(b'x' * 65536)"

        output = invoker.invoke(sys.executable, ["-c", script], dict(os.environ), 30)

        assert output == b"x" * 1025

    def test_oversized_output_rejected(self):
        runner = ExecPluginRunner(timeout=30, max_output_bytes=1024)
        config = ExecConfig(
            api_version=API_VERSION,
            command=sys.executable,
            args=("-c", "import sys; sys.stdout.buffer.write(b'x' * 64 * 1024 * 1024)"),
        )

        with pytest.raises(ExecPluginError, match="more than 1024 bytes"):
            runner.run(config)

    def test_large_stderr_does_not_block(self):
        script = (
            "import sys; sys.stderr.write('e' * 4 * 1024 * 1024); "
            f"sys.stdout.write({exec_credential_json(token='quiet').decode('utf-8')!r})"
        )
        config = ExecConfig(api_version=API_VERSION, command=sys.executable, args=("-c", script))

        runner = ExecPluginRunner(timeout=30)

        assert runner.run(config).to_credential().authorization == "Bearer quiet"
