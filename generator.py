"""Generate random transaction CSVs for load testing the payments engine."""

from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple
import argparse
import csv
import random
import sys

from models import TransactionType

INPUT_HEADER = ["type", "client", "tx", "amount"]

TRANSACTION_TYPES = [
    TransactionType.dispute,
    TransactionType.deposit,
    TransactionType.withdrawal,
    TransactionType.chargeback,
    TransactionType.resolve,
]


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Emit a random transaction CSV. Deposits and withdrawals use the row number "
            "as their transaction id; disputes, resolves and chargebacks reference a "
            "random earlier one."
        )
    )
    parser.add_argument("--rows", type=int, default=100_000, help="Number of transactions to emit.")
    parser.add_argument("--clients", type=int, default=5000, help="Highest client id to use.")
    parser.add_argument("--max-amount", type=int, default=1000, help="Highest amount to use.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible datasets.")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("-"),
        help="Where to write the CSV. Use '-' for stdout.",
    )
    return parser.parse_args(argv)


def generate_rows(
    count: int,
    max_client_id: int,
    max_amount: int,
    rng: random.Random
) -> Iterator[Tuple[str, int, int, int]]:
    for row_id in range(1, count + 1):
        tx_type = rng.choice(TRANSACTION_TYPES)
        client_id = rng.randint(1, max_client_id)
        if tx_type.carries_amount:
            tx_id = row_id
        else:
            tx_id = rng.randint(1, row_id)
        yield tx_type.value, client_id, tx_id, rng.randint(1, max_amount)


def write_rows(rows, stream) -> None:
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(INPUT_HEADER)
    writer.writerows(rows)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    if args.rows < 0 or args.clients < 1 or args.max_amount < 1:
        print("--rows must be >= 0, --clients and --max-amount >= 1", file=sys.stderr)
        return 2

    rows = generate_rows(args.rows, args.clients, args.max_amount, random.Random(args.seed))

    if str(args.output) == "-":
        write_rows(rows, sys.stdout)
    else:
        with args.output.open("w", newline="", encoding="utf-8") as handle:
            write_rows(rows, handle)
    return 0


if __name__ == "__main__":
    sys.exit(main())
