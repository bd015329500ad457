import sys
import subprocess
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

from deploy_friendgpt.config import DeploymentConfig  # noqa: E402


class CommandRecorder:
    """Stand-in for run_command that records argv lists instead of executing them."""

    def __init__(self):
        self.calls = []
        self.outputs = {}
        self.fail_on = None

    def __call__(self, cmd, check=True, capture=False, env=None, cwd=None):
        self.calls.append(list(cmd))
        if self.fail_on and cmd[:len(self.fail_on)] == self.fail_on:
            from deploy_friendgpt.errors import ProvisioningError
            raise ProvisioningError(f"Command failed with exit code 1: {' '.join(cmd)}",
                                    cmd=cmd, returncode=1)
        stdout = self.outputs.get(tuple(cmd), "")
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    def commands(self, prefix):
        return [c for c in self.calls if c[:len(prefix)] == prefix]


@pytest.fixture()
def recorder():
    return CommandRecorder()


@pytest.fixture()
def deploy_config():
    return DeploymentConfig(
        instance="eligpt",
        domain="eli.example.com",
        app_user="eli",
        openai_api_key="sk-test",
        bot_password="open sesame",
        system_prompt="You are Eli.\\nBe brief.",
        flask_secret_key="0123456789abcdef0123456789abcdef",
        port=5123,
        want_tls=True,
        cert_email="ops@example.com",
    )
