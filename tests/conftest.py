import subprocess

import pytest
import requests

from shichain.settings import Settings


class FakeRun:
    """记录所有子进程调用，按命令返回预设的退出码和输出"""

    def __init__(self, returncodes=None, stdout=None):
        self.calls = []
        self.returncodes = returncodes or {}
        self.stdout = stdout or {}

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        key = " ".join(cmd)
        code = next((c for prefix, c in self.returncodes.items() if key.startswith(prefix)), 0)
        out = next((o for prefix, o in self.stdout.items() if key.startswith(prefix)), "")
        return subprocess.CompletedProcess(cmd, code, stdout=out, stderr="")

    def commands(self):
        return [" ".join(c) for c in self.calls]


class FakeResponse:
    def __init__(self, url, content=b"", status_code=200):
        self.url = url
        self.content = content
        self.status_code = status_code

    @property
    def text(self):
        return self.content.decode()

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}", response=self)

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]


class FakeSession:
    def __init__(self, routes=None, error=None):
        self.routes = routes or {}
        self.error = error
        self.requests = []

    def get(self, url, **kwargs):
        self.requests.append((url, kwargs))
        if self.error is not None:
            raise self.error
        if url not in self.routes:
            return FakeResponse(url, b"Not Found", status_code=404)
        return FakeResponse(url, self.routes[url])


@pytest.fixture
def settings(tmp_path):
    install = tmp_path / "etc" / "shichain"
    return Settings(
        install_path=install,
        xray_path=install / "xray",
        config_path=install / "config.json",
        dat_path=install / "iran.dat",
        log_path=tmp_path / "log",
        install_user="nobody",
        systemd_dir=tmp_path / "systemd",
    )


@pytest.fixture
def fake_run():
    return FakeRun()


def scripted_reader(*answers):
    """依次返回给定答案的 input 替身"""
    it = iter(answers)
    return lambda prompt="": next(it)
