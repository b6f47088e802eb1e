"""
Tests for the candle ingestion script and the ClickHouse inventory helpers.
"""

import sys

import pytest

from scripts.ingest_candles import list_inventory, main
from signal_backtester.ingestion.clickhouse_schema import verify_connection

from candle_factory import BASE_TS, HOUR_MS


def fake_query(query, parameters=None):
    """Answers the inventory queries the way ClickHouse would for two stored symbols."""
    result = type("Result", (), {})()
    if "DISTINCT symbol" in query:
        result.result_rows = [("BTC-USD",), ("ETH-USD",)]
    elif "MIN(timestamp)" in query:
        if parameters["symbol"] == "BTC-USD":
            result.result_rows = [(BASE_TS, BASE_TS + HOUR_MS, 2)]
        else:
            result.result_rows = [(0, 0, 0)]
    else:
        result.result_rows = [(2,)]
    return result


class TestInventory:

    def test_list_inventory(self, mocker):
        client = mocker.Mock()
        client.query.side_effect = fake_query

        inventory = list_inventory(client, ["1h"])

        assert inventory == [("BTC-USD", "1h", BASE_TS, BASE_TS + HOUR_MS, 2)]

    def test_empty_inventory(self, mocker):
        client = mocker.Mock()
        client.query.return_value.result_rows = []
        assert list_inventory(client, ["1h", "15m"]) == []

    def test_verify_connection(self, mocker):
        client = mocker.Mock()
        client.command.return_value = 1
        assert verify_connection(client)

        client.command.side_effect = RuntimeError("connection refused")
        assert not verify_connection(client)


class TestMain:

    def run_main(self, mocker, monkeypatch, *argv):
        client = mocker.Mock()
        client.command.return_value = 1
        client.query.side_effect = fake_query
        mocker.patch("scripts.ingest_candles.get_client", return_value=client)
        monkeypatch.setattr(sys, "argv", ["ingest_candles.py", *argv])
        with pytest.raises(SystemExit) as exc_info:
            main()
        return client, exc_info.value.code

    def test_symbols_required(self, mocker, monkeypatch):
        _, code = self.run_main(mocker, monkeypatch)
        assert code == 2

    def test_verify_only(self, mocker, monkeypatch):
        client, code = self.run_main(mocker, monkeypatch, "--verify")
        assert code == 0
        client.insert.assert_not_called()

    def test_failed_connection_exits(self, mocker, monkeypatch):
        client = mocker.Mock()
        client.command.side_effect = RuntimeError("connection refused")
        mocker.patch("scripts.ingest_candles.get_client", return_value=client)
        monkeypatch.setattr(sys, "argv", ["ingest_candles.py", "--symbols", "BTC-USD"])

        with pytest.raises(SystemExit) as exc_info:
            main()

        assert exc_info.value.code == 1
        client.insert.assert_not_called()

    def test_list_only(self, mocker, monkeypatch):
        inventory = mocker.spy(sys.modules["scripts.ingest_candles"], "list_inventory")
        client, code = self.run_main(mocker, monkeypatch, "--list", "--timeframes", "1h")

        assert code == 0
        assert inventory.call_args.args[1] == ["1h"]
        client.insert.assert_not_called()
