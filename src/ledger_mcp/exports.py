"""CSV export of an account's transactions and verbatim read-back."""

import os
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog

from .database import Database
from .exceptions import (
    ArtifactNotFoundError,
    ArtifactReadError,
    ArtifactWriteError,
    InvalidArtifactPathError,
)
from .models import Transaction
from .utils import format_amount

logger = structlog.get_logger(__name__)

EXPORT_FILENAME = "transactions.csv"
EXPORT_HEADER = "ID,NAME,AMOUNT,TYPE,ACCOUNT_ID,CREATION_TS"
CSV_MEDIA_TYPE = "text/csv"


def default_file_mode() -> int:
    """Permission bits a plain ``open(path, "w")`` would give a new file."""
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


@dataclass(frozen=True)
class ExportPayload:
    """Downloadable artifact content."""

    filename: str
    media_type: str
    content: str


def render_row(tx: Transaction) -> str:
    # Plain join: commas inside names are not quoted or escaped.
    return ",".join(
        [
            str(tx.id),
            tx.name,
            format_amount(tx.amount),
            str(int(tx.type)),
            str(tx.account_id),
            tx.creation_ts,
        ]
    )


def render_csv(transactions: Iterable[Transaction]) -> str:
    lines = [EXPORT_HEADER]
    lines.extend(render_row(tx) for tx in transactions)
    return "".join(f"{line}\n" for line in lines)


class CsvExporter:
    """Writes and reads the single shared export artifact.

    Every export overwrites the same file regardless of account; callers
    must serialise export and read-back (LedgerService does).
    """

    def __init__(self, db: Database, export_dir: str | Path, filename: str = EXPORT_FILENAME):
        self.db = db
        self.export_dir = Path(export_dir)
        self.filename = filename

    @property
    def artifact_path(self) -> Path:
        return self.export_dir / self.filename

    def export_account(self, account_id: int) -> Path:
        """Write the account's transactions to the artifact, all or nothing.

        Raises:
            NotFoundError: account does not exist.
            ArtifactWriteError: the artifact could not be written.
        """
        with self.db.snapshot():
            self.db.get_account(account_id)
            transactions = self.db.list_transactions(account_id)
        content = render_csv(transactions)
        path = self.artifact_path

        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.export_dir, prefix=f".{self.filename}.", suffix=".tmp"
            )
        except OSError as e:
            raise ArtifactWriteError(f"Unable to prepare export in {self.export_dir}: {e}") from e

        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                handle.write(content)
                handle.flush()
                os.fsync(handle.fileno())
            # mkstemp creates the file owner-only
            os.chmod(tmp_path, default_file_mode())
            tmp_path.replace(path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise ArtifactWriteError(f"Unable to write export to {path}: {e}") from e

        logger.info(
            "export_written",
            account_id=account_id,
            path=str(path),
            rows=len(transactions),
        )
        return path

    def read_artifact(self, filename: str | None = None) -> ExportPayload:
        """Return the artifact text verbatim as a CSV payload.

        Raises:
            InvalidArtifactPathError: filename is not a plain file name.
            ArtifactNotFoundError: nothing has been exported yet.
            ArtifactReadError: unreadable, not UTF-8, or truncated.
        """
        name = self.filename if filename is None else filename
        path = self._resolve(name)

        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                content = handle.read()
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(f"Export artifact {path} does not exist") from e
        except UnicodeDecodeError as e:
            raise ArtifactReadError(f"Export artifact {path} is not valid UTF-8") from e
        except OSError as e:
            raise ArtifactReadError(f"Unable to read export artifact {path}: {e}") from e

        first_line = content.split("\n", 1)[0]
        if first_line != EXPORT_HEADER or not content.endswith("\n"):
            raise ArtifactReadError(f"Export artifact {path} is truncated or malformed")

        return ExportPayload(filename=name, media_type=CSV_MEDIA_TYPE, content=content)

    def _resolve(self, name: str) -> Path:
        if not name or Path(name).name != name or name in (".", ".."):
            raise InvalidArtifactPathError(f"Invalid export file name: {name!r}")
        return self.export_dir / name
