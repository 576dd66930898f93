"""Tests for the dbcopy command line."""

import os
import signal

import pytest

from conftest import InMemoryCollection, make_records
from dbcopy import cli
from dbcopy.cli import build_parser, main, overrides_from_args, select_collections


class FakeDatabaseClient:
    """Stands in for MongoDatabaseClient, backed by InMemoryCollection stores"""

    stores = {}
    fail_connect = set()

    def __init__(self, config, label="database"):
        self.config = config
        self.label = label
        self.last_error = None
        self.disconnected = False

    async def connect(self):
        if self.config.connection_string in self.fail_connect:
            self.last_error = IOError("connection refused")
            return False
        return True

    async def disconnect(self):
        self.disconnected = True

    @property
    def _store(self):
        return self.stores.setdefault(self.config.connection_string, {})

    async def list_collection_names(self):
        return sorted(self._store)

    def collection(self, name):
        return self._store.setdefault(name, InMemoryCollection(name))


@pytest.fixture
def fake_databases(monkeypatch, tmp_path):
    for name in list(os.environ):
        if name.startswith("DBCOPY_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(cli, "MongoDatabaseClient", FakeDatabaseClient)
    FakeDatabaseClient.stores = {
        "mongodb://source": {
            "orders": InMemoryCollection("orders", make_records(25, prefix="order")),
            "users": InMemoryCollection("users", make_records(3, prefix="user")),
            "empty": InMemoryCollection("empty"),
        },
        "mongodb://target": {},
    }
    FakeDatabaseClient.fail_connect = set()
    return FakeDatabaseClient.stores


def argv(*extra):
    return ["--source", "mongodb://source", "--target", "mongodb://target",
            "--yes", "--no-progress", "--max-page-size", "10", *extra]


class TestSelectCollections:

    def test_all_when_none_requested(self):
        assert select_collections(["a", "b"], []) == ["a", "b"]

    def test_requested_order_without_duplicates(self):
        assert select_collections(["a", "b", "c"], ["c", "a", "c"]) == ["c", "a"]

    def test_missing_collection_is_named(self):
        with pytest.raises(ValueError, match="ghost"):
            select_collections(["a"], ["a", "ghost"])


class TestOverrides:

    def test_unset_options_are_none(self):
        overrides = overrides_from_args(build_parser().parse_args([]))
        assert overrides["source_database"]["connection_string"] is None
        assert overrides["monitoring"]["progress_bars"] is None

    def test_options_map_to_settings(self):
        args = build_parser().parse_args(["-s", "mongodb://a", "--target-db", "copy",
                                          "-c", "users,orders", "--max-page-size", "50",
                                          "--no-progress"])
        overrides = overrides_from_args(args)
        assert overrides["source_database"]["connection_string"] == "mongodb://a"
        assert overrides["target_database"]["database_name"] == "copy"
        assert overrides["collections"] == "users,orders"
        assert overrides["transfer"]["max_page_size"] == 50
        assert overrides["monitoring"]["progress_bars"] is False


class TestMain:
    """End-to-end runs of main() against in-memory stores"""

    @pytest.mark.asyncio
    async def test_missing_configuration(self, fake_databases):
        assert await main([]) == 1

    @pytest.mark.asyncio
    async def test_unknown_config_key(self, fake_databases, tmp_path, capsys):
        config_file = tmp_path / "copy.json"
        config_file.write_text('{"transfer": {"batch_size": 500}}')

        assert await main(argv("--config", str(config_file))) == 1
        assert "batch_size" in capsys.readouterr().err
        assert fake_databases["mongodb://target"] == {}

    @pytest.mark.asyncio
    async def test_copies_every_collection(self, fake_databases):
        assert await main(argv()) == 0

        source, target = fake_databases["mongodb://source"], fake_databases["mongodb://target"]
        assert sorted(target) == ["empty", "orders", "users"]
        for name in ("orders", "users", "empty"):
            assert target[name].records == source[name].records

    @pytest.mark.asyncio
    async def test_copies_selected_collections(self, fake_databases):
        assert await main(argv("--collections", "users")) == 0
        assert list(fake_databases["mongodb://target"]) == ["users"]

    @pytest.mark.asyncio
    async def test_unknown_collection(self, fake_databases):
        assert await main(argv("-c", "ghost")) == 1
        assert fake_databases["mongodb://target"] == {}

    @pytest.mark.asyncio
    async def test_failed_collection_sets_exit_code(self, fake_databases):
        fake_databases["mongodb://target"]["orders"] = InMemoryCollection("orders", fail_insert_on=2)

        assert await main(argv()) == 1

        target = fake_databases["mongodb://target"]
        assert target["users"].records == fake_databases["mongodb://source"]["users"].records

    @pytest.mark.asyncio
    async def test_connection_failure(self, fake_databases, monkeypatch):
        FakeDatabaseClient.fail_connect = {"mongodb://target"}
        monkeypatch.setenv("DBCOPY_CONNECT_RETRIES", "1")

        assert await main(argv()) == 1

    @pytest.mark.asyncio
    async def test_declined_confirmation(self, fake_databases, monkeypatch):
        monkeypatch.setattr("builtins.input", lambda prompt: "n")
        args = [a for a in argv() if a != "--yes"]

        assert await main(args) == 1
        assert fake_databases["mongodb://target"] == {}

    @pytest.mark.asyncio
    async def test_empty_source_database(self, fake_databases):
        fake_databases["mongodb://source"].clear()

        assert await main(argv()) == 1


class InterruptedCollection(InMemoryCollection):
    """Source whose reads deliver Ctrl+C to the running command"""

    async def read(self, offset, limit):
        signal.getsignal(signal.SIGINT)(signal.SIGINT, None)
        return await super().read(offset, limit)


class TestInterrupt:

    @pytest.mark.asyncio
    async def test_interrupt_stops_after_current_page(self, fake_databases):
        fake_databases["mongodb://source"]["orders"] = InterruptedCollection(
            "orders", make_records(25, prefix="order"))
        fake_databases["mongodb://target"]["users"] = InMemoryCollection(
            "users", make_records(2, prefix="keep"))

        assert await main(argv()) == 130

        target = fake_databases["mongodb://target"]
        assert len(target["orders"].records) == 10
        assert target["users"].clear_calls == 0
        assert len(target["users"].records) == 2
        assert signal.getsignal(signal.SIGINT) is signal.default_int_handler
