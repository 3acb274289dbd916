"""Shared fixtures for pushtart tests."""

import time

import pytest

from pushtart.config import Config
from pushtart.manager import TartManager
from pushtart.models import Tart
from pushtart.store import TartStore

SLEEPER = "exec sleep 60\n"


class BrokenDiskStore(TartStore):
    """In-memory store whose writes fail once `broken` is set."""

    broken = False

    def _flush(self):
        if self.broken:
            raise OSError(28, "No space left on device")


def wait_for(predicate, timeout=5.0, interval=0.05):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def config(tmp_path):
    return Config(
        data_path=str(tmp_path / "data"),
        deployment_path=str(tmp_path / "deployments"),
        stop_grace_seconds=2,
        run_sentry_interval=1,
    )


@pytest.fixture
def store(config):
    return TartStore(config)


@pytest.fixture
def manager(store):
    manager = TartManager(store)
    yield manager
    # Never leave sleepers behind
    for tart in store.all().tarts.values():
        handle = manager.supervisor.handle_for(tart.push_url)
        if handle is not None:
            handle.terminate(1)


@pytest.fixture
def add_tart(manager):
    """Register a tart directly in the store with a startup script in place."""

    def _add(push_url="/blog", owners=("alice",), script=SLEEPER, **fields):
        tart = Tart(push_url=push_url, name=push_url.lstrip("/"), owners=list(owners), **fields)
        manager.store.save(push_url, tart)
        work_dir = manager.supervisor.deployment_dir_for(push_url)
        work_dir.mkdir(parents=True, exist_ok=True)
        if script is not None:
            (work_dir / "startup.sh").write_text(script)
        return tart

    return _add
