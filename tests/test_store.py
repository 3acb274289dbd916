"""Tests for pushtart.config and pushtart.store."""

import pytest
import yaml

from pushtart.config import Config, load_config
from pushtart.errors import ExecutionFailed, NotFound
from pushtart.models import Tart, User
from pushtart.store import TartStore, YamlTartStore, open_store

from conftest import BrokenDiskStore


class TestConfig:
    def test_generates_default_when_missing(self, tmp_path):
        path = tmp_path / "pushtart.yaml"
        config = load_config(path)
        assert path.exists()
        assert config.name == "pushtart"
        assert config.run_sentry_interval == 10
        assert config.tarts == {}

    def test_relative_paths_resolve_next_to_config(self, tmp_path):
        config = load_config(tmp_path / "pushtart.yaml")
        assert config.data_dir == tmp_path.resolve() / "data"
        assert config.deployment_dir == tmp_path.resolve() / "deployments"

    def test_reads_nested_sections(self, tmp_path):
        path = tmp_path / "pushtart.yaml"
        path.write_text(yaml.dump({
            "name": "box",
            "run_sentry_interval": 3,
            "web_ui": {"port": 9000},
            "logging": {"level": "DEBUG"},
            "users": {"alice": {"allow_ssh_password": True}},
            "tarts": {"/blog": {"name": "Blog", "owners": ["alice"], "env": ["PORT=1"]}},
        }))
        config = load_config(path)
        assert config.name == "box"
        assert config.run_sentry_interval == 3
        assert config.web_port == 9000
        assert config.web_host == "0.0.0.0"
        assert config.log_level == "DEBUG"
        assert config.users["alice"] == User(name="alice", allow_ssh_password=True)
        assert config.tarts["/blog"].push_url == "/blog"
        assert config.tarts["/blog"].env == ["PORT=1"]


class TestTartStore:
    def test_get_unknown_raises(self):
        with pytest.raises(NotFound):
            TartStore().get("/nope")

    def test_get_returns_copy(self):
        store = TartStore()
        store.save("/app", Tart(push_url="/app", owners=["alice"]))
        tart = store.get("/app")
        tart.owners.append("mallory")
        assert store.get("/app").owners == ["alice"]

    def test_save_is_upsert(self):
        store = TartStore()
        store.save("/app", Tart(push_url="/app", name="one"))
        store.save("/app", Tart(push_url="/app", name="two"))
        assert store.exists("/app")
        assert store.get("/app").name == "two"
        assert len(store.all().tarts) == 1

    def test_delete(self):
        store = TartStore()
        store.save("/app", Tart(push_url="/app"))
        store.delete("/app")
        assert not store.exists("/app")
        with pytest.raises(NotFound):
            store.delete("/app")

    def test_all_is_a_snapshot(self):
        store = TartStore(Config(name="box"))
        store.save("/app", Tart(push_url="/app"))
        snapshot = store.all()
        store.save("/other", Tart(push_url="/other"))
        assert snapshot.name == "box"
        assert list(snapshot.tarts) == ["/app"]


class TestYamlTartStore:
    def test_save_persists_to_disk(self, tmp_path):
        path = tmp_path / "pushtart.yaml"
        store = open_store(path)
        assert isinstance(store, YamlTartStore)
        store.save("/app", Tart(push_url="/app", owners=["alice"], is_running=True, pid=42))

        reloaded = open_store(path)
        tart = reloaded.get("/app")
        assert tart.owners == ["alice"]
        assert tart.is_running is True
        assert tart.pid == 42

    def test_delete_persists_to_disk(self, tmp_path):
        path = tmp_path / "pushtart.yaml"
        store = open_store(path)
        store.save("/app", Tart(push_url="/app"))
        store.delete("/app")
        assert not open_store(path).exists("/app")


class TestFailedWrite:
    def test_failed_save_keeps_previous_record(self):
        store = BrokenDiskStore()
        store.save("/app", Tart(push_url="/app", name="one"))
        store.broken = True

        with pytest.raises(ExecutionFailed, match="No space left"):
            store.save("/app", Tart(push_url="/app", name="two"))

        assert store.get("/app").name == "one"

    def test_failed_create_leaves_nothing_behind(self):
        store = BrokenDiskStore()
        store.broken = True
        with pytest.raises(ExecutionFailed):
            store.save("/app", Tart(push_url="/app"))
        assert not store.exists("/app")

    def test_failed_delete_keeps_record(self):
        store = BrokenDiskStore()
        store.save("/app", Tart(push_url="/app", owners=["alice"]))
        store.broken = True
        with pytest.raises(ExecutionFailed):
            store.delete("/app")
        assert store.get("/app").owners == ["alice"]

    def test_unwritable_config_file(self, tmp_path):
        path = tmp_path / "pushtart.yaml"
        store = open_store(path)
        store.save("/app", Tart(push_url="/app", name="one"))
        path.unlink()
        path.mkdir()
        (path / "keep").write_text("")

        with pytest.raises(ExecutionFailed):
            store.save("/app", Tart(push_url="/app", name="two"))
        assert store.get("/app").name == "one"
