from unittest.mock import AsyncMock, patch

import pytest

from config import get_settings_for_environment
from errors import StorageError
from main import main, run
from repositories import AccountRepository
from storage import InMemoryKeyValueStore


@pytest.fixture
def csv_file(tmp_path):
    def write(*lines):
        path = tmp_path / "transactions.csv"
        path.write_text('\n'.join(lines))
        return str(path)
    return write


class TestCommandLine:
    """Running the engine over a CSV file."""

    def test_prints_final_balances(self, csv_file, capsys):
        path = csv_file(
            "type, client, tx, amount",
            "deposit, 1, 1, 1.0",
            "deposit, 2, 2, 2.0",
            "deposit, 1, 3, 2.0",
            "withdrawal, 1, 4, 1.5",
            "withdrawal, 2, 5, 3.0",
        )

        assert main([path]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "client,available,held,total,locked",
            "1,1.5,0,1.5,false",
            "2,2,0,2,false",
        ]

    def test_dispute_rows_without_amount_column(self, csv_file, capsys):
        path = csv_file(
            "type, client, tx, amount",
            "deposit, 1, 1, 1.0000",
            "withdrawal, 1, 2, 0.5000",
            "dispute, 1, 1",
            "deposit, 2, 3, 3.1415",
            "dispute, 2, 3,",
            "chargeback, 2, 3,",
        )

        assert main([path]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "client,available,held,total,locked",
            "1,0,0.5,0.5,false",
            "2,0,0,0,true",
        ]

    def test_amounts_truncated_to_four_places(self, csv_file, capsys):
        path = csv_file(
            "type,client,tx,amount",
            "deposit,1,1,1.23456",
            "deposit,1,2,0.0001",
        )

        assert main([path]) == 0

        assert capsys.readouterr().out.splitlines()[1] == "1,1.2346,0,1.2346,false"

    def test_sqlite_ledger(self, csv_file, tmp_path, capsys):
        path = csv_file(
            "type, client, tx, amount",
            "deposit, 1, 1, 10",
            "dispute, 1, 1,",
        )

        assert main([path, "--ledger-db", str(tmp_path / "ledger.db")]) == 0

        assert capsys.readouterr().out.splitlines()[1] == "1,0,10,10,false"
        assert (tmp_path / "ledger.db").exists()

    def test_rerun_against_same_ledger_db(self, csv_file, tmp_path, capsys):
        """A ledger left by an earlier run does not leak into the next one."""
        path = csv_file(
            "type, client, tx, amount",
            "deposit, 1, 1, 10",
            "dispute, 1, 2,",
            "deposit, 1, 2, 5",
        )
        ledger_db = str(tmp_path / "ledger.db")

        for _ in range(2):
            assert main([path, "--ledger-db", ledger_db]) == 0
            assert capsys.readouterr().out.splitlines()[1:] == ["1,15,0,15,false"]

    def test_invalid_utf8_row_is_skipped(self, tmp_path, capsys):
        path = tmp_path / "transactions.csv"
        path.write_bytes(
            b"type,client,tx,amount\n"
            b"deposit,1,1,1.0\n"
            b"deposit,2,2,\xff\xfe\n"
            b"deposit,1,3,2.0\n"
        )

        assert main([str(path)]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "client,available,held,total,locked",
            "1,3,0,3,false",
        ]

    def test_oversized_field_is_skipped(self, csv_file, capsys):
        path = csv_file(
            "type,client,tx,amount",
            "deposit,1,1,1.0",
            "deposit,2,2," + "1" * 200_000,
            "deposit,1,3,2.0",
        )

        assert main([path]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "client,available,held,total,locked",
            "1,3,0,3,false",
        ]

    def test_missing_input_file_fails(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.csv")]) == 1
        assert capsys.readouterr().out == ""

    def test_non_positive_queue_capacity_fails(self, csv_file):
        path = csv_file("type, client, tx, amount")
        assert main([path, "--queue-capacity", "0"]) == 1

    def test_missing_argument_exits(self):
        with pytest.raises(SystemExit):
            main([])



class TestRun:
    @pytest.mark.asyncio
    async def test_logs_application_on_start(self, csv_file):
        path = csv_file("type, client, tx, amount")
        settings = get_settings_for_environment("testing")

        with patch("main.logger") as mock_logger:
            assert await run(settings, path) == []

        mock_logger.info.assert_any_call(
            "Starting run", app=settings.app_name, version=settings.app_version, input=path
        )

    @pytest.mark.asyncio
    async def test_closes_account_store_when_ledger_cannot_open(self, csv_file, monkeypatch):
        path = csv_file("type, client, tx, amount")
        account_repo = AccountRepository(InMemoryKeyValueStore())
        account_repo.close = AsyncMock()

        def broken_ledger(settings):
            raise StorageError("cannot open ledger.db")

        monkeypatch.setattr("main.create_account_repository", lambda settings: account_repo)
        monkeypatch.setattr("main.create_ledger_repository", broken_ledger)

        with pytest.raises(StorageError):
            await run(get_settings_for_environment("testing"), path)

        account_repo.close.assert_awaited_once()


class TestSettings:
    def test_environment_profiles(self):
        assert get_settings_for_environment("development").log_level == "DEBUG"
        assert get_settings_for_environment("testing").queue_capacity == 8
        assert get_settings_for_environment("production").queue_capacity == 1024

    def test_environment_variables_override(self, monkeypatch):
        monkeypatch.setenv("PAYMENTS_QUEUE_CAPACITY", "16")
        monkeypatch.setenv("PAYMENTS_LEDGER_BACKEND", "sqlite")

        settings = get_settings_for_environment("production")

        assert settings.queue_capacity == 16
        assert settings.ledger_backend == "sqlite"
