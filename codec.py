from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterable, Iterator, TextIO, Union
import csv

from errors import InputError
from models import Account, AccountRow

OUTPUT_HEADER = ["client", "available", "held", "total", "locked"]


@contextmanager
def open_transaction_rows(path: Union[str, Path]) -> Iterator[Iterator[Dict[str, str]]]:
    """Open an input CSV and yield its rows as dicts keyed by header name."""
    try:
        handle = open(path, newline="", encoding="utf-8", errors="replace")
    except OSError as e:
        raise InputError(f"cannot open {path}: {e}") from e

    with handle:
        yield csv.DictReader(handle, skipinitialspace=True)


def write_accounts(accounts: Iterable[Account], stream: TextIO) -> None:
    """Write the final account snapshot as CSV."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(OUTPUT_HEADER)
    for account in accounts:
        writer.writerow(AccountRow.from_account(account).as_csv_row())
