import shutil
from pathlib import Path

import pytest

from tickstack import config
from tickstack.commands import CommandResult
from tickstack.errors import CommandError

RECIPE_COMPOSE = config.RECIPE_DIR / "docker-compose.yml"
RECIPE_TELEGRAF = config.RECIPE_DIR / "telegraf" / "telegraf.conf"

# package name -> binary it provides
PACKAGE_BINARIES = {"docker.io": "docker", "docker-compose": "docker-compose"}


class FakeRunner:
    """Records commands instead of executing them."""

    description = "fake-host"

    def __init__(self, present=("docker", "docker-compose"), fail_on=None, installs_work=True):
        self.present = set(present)
        self.fail_on = fail_on
        self.installs_work = installs_work
        self.calls = []
        self.uploads = []
        self.closed = False

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.present else None

    def run(self, argv, check=True):
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        if self.fail_on is not None and self.fail_on(argv):
            if check:
                raise CommandError(argv, 100, stderr="E: Unable to locate package")
            return CommandResult(argv, 100)
        if "install" in argv and self.installs_work:
            for package in argv[argv.index("-y") + 1:]:
                self.present.add(PACKAGE_BINARIES.get(package, package))
        return CommandResult(argv, 0, stdout="Creating influxdb ... done\n")

    def upload(self, local_path, remote_path):
        self.uploads.append((Path(local_path), remote_path))

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def recipe_dir(tmp_path):
    """A writable copy of the shipped recipe."""
    shutil.copy(RECIPE_COMPOSE, tmp_path / "docker-compose.yml")
    (tmp_path / "telegraf").mkdir()
    shutil.copy(RECIPE_TELEGRAF, tmp_path / "telegraf" / "telegraf.conf")
    return tmp_path


@pytest.fixture
def write_compose(recipe_dir):
    """Overwrite the manifest in recipe_dir and return its path."""
    def _write(text):
        path = recipe_dir / "docker-compose.yml"
        path.write_text(text)
        return path
    return _write
