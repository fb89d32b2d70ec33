"""Tests for the entry point: store selection, per-store isolation, exit codes."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from eggprices import config
from eggprices.errors import ConfigError, ProductAPIError, TokenError
from eggprices.main import main, process_store, select_stores
from eggprices.models import StoreBuckets, StoreStatus

CAPTURED_AT = datetime(2026, 10, 18, 6, 30, tzinfo=timezone.utc)

ENV = {
    "SUPABASE_URL": "https://example.supabase.co",
    "SUPABASE_SERVICE_KEY": "service-key",
    "KROGER_CLIENT_ID": "client-id",
    "KROGER_CLIENT_SECRET": "client-secret",
}


@pytest.fixture
def env(monkeypatch):
    for name, value in ENV.items():
        monkeypatch.setenv(name, value)
    monkeypatch.delenv("START_AT", raising=False)
    monkeypatch.delenv("END_AT", raising=False)
    monkeypatch.setattr(config, "STORE_DELAY", 0)


class TestSelectStores:
    """Tests for select_stores."""

    IDS = ["00000001", "00000002", "00000003", "00000004"]

    def test_all(self):
        assert select_stores(self.IDS) == self.IDS

    def test_only_is_normalized(self):
        assert select_stores(self.IDS, only=["3", "00000001", " "]) == ["00000001", "00000003"]

    def test_index_range(self):
        assert select_stores(self.IDS, start_at=1, end_at=3) == ["00000002", "00000003"]

    def test_only_then_range(self):
        assert select_stores(self.IDS, only=["2", "3", "4"], start_at=1) == ["00000003", "00000004"]


class TestShardBounds:
    """Tests for config.shard_bounds."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("START_AT", raising=False)
        monkeypatch.delenv("END_AT", raising=False)
        assert config.shard_bounds() == (0, None)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("START_AT", "100")
        monkeypatch.setenv("END_AT", "200")
        assert config.shard_bounds() == (100, 200)

    def test_invalid(self, monkeypatch):
        monkeypatch.setenv("START_AT", "abc")
        with pytest.raises(ConfigError):
            config.shard_bounds()


class TestCheckRequiredEnv:
    """Tests for config.check_required_env."""

    def test_all_present(self, env):
        config.check_required_env()

    def test_missing_listed(self, env, monkeypatch):
        monkeypatch.delenv("KROGER_CLIENT_SECRET")
        with pytest.raises(ConfigError, match="KROGER_CLIENT_SECRET"):
            config.check_required_env()


class TestProcessStore:
    """Tests for process_store."""

    def test_summary(self, env):
        client = MagicMock()
        client.fetch_and_classify.return_value = StoreBuckets(regular_prices=[3.49])

        summary = process_store(client, "70400770", CAPTURED_AT)

        assert summary.location_id == "70400770"
        assert summary.status == StoreStatus.OK

    def test_failure_is_isolated(self, env, caplog):
        client = MagicMock()
        client.fetch_and_classify.side_effect = ProductAPIError(401, "", "u")

        assert process_store(client, "70400770", CAPTURED_AT) is None
        assert "70400770" in caplog.text

    def test_token_error_propagates(self, env):
        client = MagicMock()
        client.fetch_and_classify.side_effect = TokenError("bad credentials")

        with pytest.raises(TokenError):
            process_store(client, "70400770", CAPTURED_AT)


@patch("eggprices.main.setup_logging")
class TestMain:
    """Tests for main / run."""

    def test_missing_config_exits_1_before_network(self, _setup, env, monkeypatch, capsys):
        monkeypatch.delenv("SUPABASE_URL")
        with patch("eggprices.main.TokenProvider") as provider, \
                patch("eggprices.main.fetch_store_location_ids") as fetch_ids:
            assert main([]) == 1
        provider.assert_not_called()
        fetch_ids.assert_not_called()
        assert "SUPABASE_URL" in capsys.readouterr().err

    def test_invalid_shard_bounds_exit_1_before_network(self, _setup, env, monkeypatch, capsys):
        monkeypatch.setenv("START_AT", "abc")
        with patch("eggprices.main.TokenProvider") as provider, \
                patch("eggprices.main.fetch_store_location_ids") as fetch_ids:
            assert main([]) == 1
        provider.assert_not_called()
        fetch_ids.assert_not_called()
        assert "START_AT" in capsys.readouterr().err

    def test_token_failure_exits_1(self, _setup, env):
        with patch("eggprices.main.TokenProvider") as provider, \
                patch("eggprices.main.fetch_store_location_ids") as fetch_ids:
            provider.return_value.get_valid.side_effect = TokenError("401")
            assert main([]) == 1
        fetch_ids.assert_not_called()

    def test_run_processes_stores_and_flushes(self, _setup, env):
        def fake_fetch(location_id):
            if location_id == "00000002":
                raise ProductAPIError(500, "boom", "u")
            if location_id == "00000003":
                return StoreBuckets()
            return StoreBuckets(regular_prices=[3.49])

        with patch("eggprices.main.TokenProvider"), \
                patch("eggprices.main.KrogerClient") as client_cls, \
                patch("eggprices.main.fetch_store_location_ids",
                      return_value=["00000001", "00000002", "00000003"]), \
                patch("eggprices.main.upsert_summaries", return_value=True) as upsert:
            client_cls.return_value.fetch_and_classify.side_effect = fake_fetch
            assert main([]) == 0

        upsert.assert_called_once()
        records = upsert.call_args.args[0]
        assert [(r["location_id"], r["status"]) for r in records] == [
            ("00000001", "OK"),
            ("00000003", "NO_DATA_FOUND"),
        ]

    def test_token_error_mid_run_flushes_and_exits_1(self, _setup, env):
        def fake_fetch(location_id):
            if location_id == "00000002":
                raise TokenError("credentials revoked")
            return StoreBuckets(regular_prices=[3.49])

        with patch("eggprices.main.TokenProvider"), \
                patch("eggprices.main.KrogerClient") as client_cls, \
                patch("eggprices.main.fetch_store_location_ids",
                      return_value=["00000001", "00000002", "00000003"]), \
                patch("eggprices.main.upsert_summaries", return_value=True) as upsert:
            client_cls.return_value.fetch_and_classify.side_effect = fake_fetch
            assert main([]) == 1

        upsert.assert_called_once()
        records = upsert.call_args.args[0]
        assert [r["location_id"] for r in records] == ["00000001"]

    def test_only_argument(self, _setup, env):
        with patch("eggprices.main.TokenProvider"), \
                patch("eggprices.main.KrogerClient") as client_cls, \
                patch("eggprices.main.fetch_store_location_ids",
                      return_value=["00000001", "00000002", "70400770"]), \
                patch("eggprices.main.upsert_summaries", return_value=True):
            client_cls.return_value.fetch_and_classify.return_value = StoreBuckets()
            assert main(["--only", "70400770,1"]) == 0

        called = [c.args[0] for c in client_cls.return_value.fetch_and_classify.call_args_list]
        assert called == ["00000001", "70400770"]

    def test_upsert_failure_does_not_change_exit_code(self, _setup, env):
        with patch("eggprices.main.TokenProvider"), \
                patch("eggprices.main.KrogerClient") as client_cls, \
                patch("eggprices.main.fetch_store_location_ids", return_value=["00000001"]), \
                patch("eggprices.main.upsert_summaries", return_value=False):
            client_cls.return_value.fetch_and_classify.return_value = StoreBuckets()
            assert main([]) == 0

    def test_enumeration_error_exits_1(self, _setup, env):
        with patch("eggprices.main.TokenProvider"), \
                patch("eggprices.main.fetch_store_location_ids", side_effect=RuntimeError("db down")):
            assert main([]) == 1
