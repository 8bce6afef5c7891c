"""Tests for the CSV export artifact and its read-back."""

import os
import stat
from decimal import Decimal
from pathlib import Path

import pytest

from ledger_mcp.database import Database
from ledger_mcp.exceptions import (
    ArtifactNotFoundError,
    ArtifactReadError,
    ArtifactWriteError,
    InvalidArtifactPathError,
    NotFoundError,
)
from ledger_mcp.exports import EXPORT_HEADER, CsvExporter, default_file_mode, render_row
from ledger_mcp.ledger import LedgerService
from ledger_mcp.models import Transaction, TransactionType


async def account_with(ledger: LedgerService, moves: list[tuple[str, float, int]]) -> int:
    user_id = await ledger.create_user("Ann", "ann@example.com")
    account_id = await ledger.create_account("Checking", 0, user_id)
    for name, amount, tx_type in moves:
        await ledger.create_transaction(name, amount, tx_type, account_id)
    return account_id


class TestRender:
    """Test row rendering."""

    def test_row_layout(self):
        tx = Transaction(
            id=3,
            name="T0-RENT",
            amount=500.0,
            type=TransactionType.OUT,
            account_id=1,
            creation_ts="2026-01-01T00:00:00.000001+00:00",
        )
        assert render_row(tx) == "3,T0-RENT,500,0,1,2026-01-01T00:00:00.000001+00:00"

    def test_commas_are_not_escaped(self):
        tx = Transaction(
            id=1,
            name="T1-A,B",
            amount=1.5,
            type=TransactionType.IN,
            account_id=2,
            creation_ts="ts",
        )
        assert render_row(tx) == "1,T1-A,B,1.5,1,2,ts"

    def test_tiny_amount_has_no_exponent(self):
        tx = Transaction(
            id=4,
            name="T0-FEE",
            amount=Decimal("0.00001"),
            type=TransactionType.OUT,
            account_id=1,
            creation_ts="ts",
        )
        assert render_row(tx) == "4,T0-FEE,0.00001,0,1,ts"


class TestExportRoundTrip:
    """Test export followed by read-back."""

    @pytest.mark.asyncio
    async def test_header_only_for_empty_account(self, ledger: LedgerService, export_dir: Path):
        account_id = await account_with(ledger, [])

        path = await ledger.export_transactions(account_id)
        payload = await ledger.read_export()

        assert path == export_dir / "transactions.csv"
        assert payload.content == EXPORT_HEADER + "\n"
        assert payload.media_type == "text/csv"
        assert payload.filename == "transactions.csv"
        assert path.read_bytes() == payload.content.encode("utf-8")

    @pytest.mark.asyncio
    async def test_rows_in_creation_order(self, ledger: LedgerService):
        account_id = await account_with(
            ledger, [("rent", 500, 0), ("salary", 2000, 1), ("coffee", 3.5, 0)]
        )

        path = await ledger.export_transactions(account_id)
        payload = await ledger.read_export()

        lines = payload.content.splitlines()
        assert lines[0] == EXPORT_HEADER
        assert [line.split(",")[1] for line in lines[1:]] == ["T0-RENT", "T1-SALARY", "T0-COFFEE"]
        assert [line.split(",")[2] for line in lines[1:]] == ["500", "2000", "3.5"]
        assert payload.content.endswith("\n")
        assert path.read_bytes() == payload.content.encode("utf-8")

    @pytest.mark.asyncio
    async def test_second_export_overwrites_first(self, ledger: LedgerService):
        first = await account_with(ledger, [("rent", 500, 0)])
        second = await account_with(ledger, [("salary", 2000, 1), ("bonus", 100, 1)])

        await ledger.export_transactions(first)
        await ledger.export_transactions(second)
        payload = await ledger.read_export()

        rows = payload.content.splitlines()[1:]
        assert len(rows) == 2
        assert all(row.split(",")[4] == str(second) for row in rows)

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    async def test_artifact_uses_default_file_mode(self, ledger: LedgerService):
        """The artifact is readable like any file the process creates, not owner-only."""
        account_id = await account_with(ledger, [("rent", 500, 0)])

        path = await ledger.export_transactions(account_id)

        assert stat.S_IMODE(path.stat().st_mode) == default_file_mode()

    @pytest.mark.asyncio
    async def test_fractional_amounts_exported_exactly(self, ledger: LedgerService):
        account_id = await account_with(ledger, [("a", 0.1, 1), ("b", 0.2, 1), ("c", 1e-05, 0)])

        await ledger.export_transactions(account_id)
        payload = await ledger.read_export()

        amounts = [line.split(",")[2] for line in payload.content.splitlines()[1:]]
        assert amounts == ["0.1", "0.2", "0.00001"]

    @pytest.mark.asyncio
    async def test_export_unknown_account(self, ledger: LedgerService):
        with pytest.raises(NotFoundError):
            await ledger.export_transactions(55)


class TestReadErrors:
    """Test artifact read failures."""

    def test_missing_artifact(self, db: Database, export_dir: Path):
        exporter = CsvExporter(db, export_dir)
        with pytest.raises(ArtifactNotFoundError):
            exporter.read_artifact()

    def test_missing_artifact_is_not_found(self, db: Database, export_dir: Path):
        with pytest.raises(NotFoundError):
            CsvExporter(db, export_dir).read_artifact()

    @pytest.mark.parametrize("name", ["../secret.csv", "a/b.csv", "", ".."])
    def test_invalid_paths(self, db: Database, export_dir: Path, name: str):
        with pytest.raises(InvalidArtifactPathError):
            CsvExporter(db, export_dir).read_artifact(name)

    def test_truncated_artifact(self, db: Database, export_dir: Path):
        export_dir.mkdir(parents=True)
        (export_dir / "transactions.csv").write_text(EXPORT_HEADER + "\n1,T0-RENT,50")

        with pytest.raises(ArtifactReadError):
            CsvExporter(db, export_dir).read_artifact()

    def test_headerless_artifact(self, db: Database, export_dir: Path):
        export_dir.mkdir(parents=True)
        (export_dir / "transactions.csv").write_text("1,T0-RENT,500,0,1,ts\n")

        with pytest.raises(ArtifactReadError):
            CsvExporter(db, export_dir).read_artifact()

    def test_undecodable_artifact(self, db: Database, export_dir: Path):
        export_dir.mkdir(parents=True)
        (export_dir / "transactions.csv").write_bytes(b"\xff\xfe\x00garbage\n")

        with pytest.raises(ArtifactReadError):
            CsvExporter(db, export_dir).read_artifact()

    def test_artifact_is_directory(self, db: Database, export_dir: Path):
        (export_dir / "transactions.csv").mkdir(parents=True)

        with pytest.raises(ArtifactReadError):
            CsvExporter(db, export_dir).read_artifact()


class TestWriteErrors:
    """Test that a failed export leaves no partial artifact."""

    def test_failed_write_keeps_previous_artifact(self, populated_db: Database, export_dir: Path):
        exporter = CsvExporter(populated_db, export_dir)
        exporter.export_account(1)
        before = exporter.artifact_path.read_text()

        # A directory in the artifact's place makes the final rename fail
        exporter.artifact_path.unlink()
        exporter.artifact_path.mkdir()
        (exporter.artifact_path / "keep").write_text("x")

        with pytest.raises(ArtifactWriteError):
            exporter.export_account(2)

        assert exporter.artifact_path.is_dir()
        assert [p.name for p in export_dir.iterdir()] == ["transactions.csv"]
        assert before == EXPORT_HEADER + "\n"

    def test_unwritable_export_dir(self, populated_db: Database, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")

        with pytest.raises(ArtifactWriteError):
            CsvExporter(populated_db, blocker / "exports").export_account(1)
