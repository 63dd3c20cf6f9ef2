"""Command line entry point for the expense ledger."""

import argparse
import asyncio
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, TextIO

from expense_ledger.analytics import (
    AnalyticsService,
    budget_alerts,
    current_month,
    detect_anomalies,
    in_month,
    search,
    summarize,
)
from expense_ledger.audit import configure_logging
from expense_ledger.config import get_settings
from expense_ledger.models.transaction import Transaction, format_instant, utc_now_iso
from expense_ledger.services.storage import (
    LocalTransactionStorage,
    StorageError,
    TransactionStorageInterface,
    ValidationFailedError,
    build_storage,
)
from expense_ledger.transfer import ExportImportGateway


def parse_date(value: str) -> str:
    """Accept YYYY-MM-DD or a full ISO instant; return a strict ISO instant."""
    try:
        if len(value) == 10:
            day = date.fromisoformat(value)
            moment = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
        else:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r}") from e
    return format_instant(moment)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expense-ledger",
        description="Record income and expenses and summarise where the money went.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level (audit events are logged at INFO by default).",
    )
    parser.add_argument(
        "--user",
        help=(
            "Act as this user (overrides LEDGER_STORAGE_USERNAME). "
            "Local storage only; rejected with the api backend."
        ),
    )
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Record a transaction.")
    add.add_argument("type", choices=["income", "expense"])
    add.add_argument("amount", help="Positive amount, e.g. 1250.50")
    add.add_argument("category", help="Free-text category, e.g. Food")
    add.add_argument("-d", "--description", default="")
    add.add_argument(
        "--date",
        type=parse_date,
        help="Transaction date (YYYY-MM-DD or ISO instant). Defaults to now.",
    )

    list_cmd = commands.add_parser("list", help="List transactions.")
    list_cmd.add_argument("--owner", help="Only transactions owned by this user id.")
    list_cmd.add_argument("--search", help="Case-insensitive text filter over all fields.")
    list_cmd.add_argument("--month", help="Only transactions in this YYYY-MM month.")

    update = commands.add_parser("update", help="Change fields of a transaction.")
    update.add_argument("id")
    update.add_argument("--type", choices=["income", "expense"])
    update.add_argument("--amount")
    update.add_argument("--category")
    update.add_argument("-d", "--description")
    update.add_argument("--date", type=parse_date)

    delete = commands.add_parser("delete", help="Delete a transaction.")
    delete.add_argument("id")

    summary = commands.add_parser("summary", help="Totals, trends and top categories.")
    summary.add_argument(
        "--period",
        choices=["week", "month", "year"],
        default="month",
        help="Rolling window to report on (default: month).",
    )

    anomalies = commands.add_parser(
        "anomalies",
        help="Expenses far above the usual amount for a category.",
    )
    anomalies.add_argument("category")

    export = commands.add_parser("export", help="Export the ledger as JSON.")
    export.add_argument(
        "--output-dir",
        type=Path,
        help="Write financial_data_YYYY-MM-DD.json here instead of printing to stdout.",
    )

    import_cmd = commands.add_parser("import", help="Replace the ledger from a JSON backup.")
    import_cmd.add_argument("path", type=Path)

    clear = commands.add_parser("clear", help="Delete all transactions and reset settings.")
    clear.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    return parser


def format_transaction(transaction: Transaction) -> str:
    sign = "+" if transaction.is_income else "-"
    line = (
        f"{transaction.id}  {transaction.date[:10]}  {sign}{transaction.amount:,.2f}  "
        f"{transaction.category}"
    )
    if transaction.description:
        line += f"  {transaction.description}"
    return line


async def _open_storage(args: argparse.Namespace) -> TransactionStorageInterface:
    storage = build_storage()
    if args.user and isinstance(storage, LocalTransactionStorage):
        await storage.set_current_user(args.user)
    return storage


async def _add(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    transaction = await storage.add_transaction({
        "type": args.type,
        "amount": args.amount,
        "category": args.category,
        "description": args.description,
        "date": args.date or utc_now_iso(),
    })
    print(f"Added {format_transaction(transaction)}", file=out)


async def _list(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    transactions = await storage.list_transactions(args.owner)
    if args.month:
        transactions = in_month(transactions, args.month)
    if args.search:
        transactions = search(transactions, args.search)
    if not transactions:
        print("No transactions found.", file=out)
        return
    for transaction in transactions:
        print(format_transaction(transaction), file=out)


async def _update(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> Optional[int]:
    patch: dict[str, Any] = {}
    for field in ("type", "amount", "category", "description", "date"):
        value = getattr(args, field)
        if value is not None:
            patch[field] = value
    if not patch:
        print("Nothing to update: pass at least one field option.", file=sys.stderr)
        return 2
    transaction = await storage.update_transaction(args.id, patch)
    print(f"Updated {format_transaction(transaction)}", file=out)
    return 0


async def _delete(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    await storage.delete_transaction(args.id)
    print(f"Deleted {args.id}", file=out)


async def _summary(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    settings = await storage.get_settings()
    currency = settings.currency
    snapshot = await AnalyticsService(storage).snapshot(args.period)

    print(f"Last {args.period}: {snapshot.transaction_count} transactions", file=out)
    print(
        f"  Income    {snapshot.current.income:>14,.2f} {currency}"
        f"  ({snapshot.income_trend:+.2f}% from last period)",
        file=out,
    )
    print(
        f"  Expenses  {snapshot.current.expenses:>14,.2f} {currency}"
        f"  ({snapshot.expense_trend:+.2f}% from last period)",
        file=out,
    )
    print(
        f"  Savings   {snapshot.net_savings:>14,.2f} {currency}"
        f"  ({snapshot.savings_rate:.2f}% savings rate)",
        file=out,
    )
    print(f"  Average daily spending {snapshot.average_daily_spending:,.2f} {currency}", file=out)
    if snapshot.max_spending_day is not None:
        print(
            f"  Highest spending day   {snapshot.max_spending_day.day}"
            f" ({snapshot.max_spending_day.expenses:,.2f} {currency})",
            file=out,
        )
    if snapshot.top_categories:
        print("Top categories:", file=out)
        for category, amount in snapshot.top_categories.items():
            print(f"  {category:<20} {amount:>14,.2f} {currency}", file=out)

    transactions = await storage.list_transactions()
    month_items = in_month(transactions, current_month())
    for alert in budget_alerts(month_items, settings):
        print(f"Budget alert: {alert.message}", file=out)

    overall = summarize(transactions)
    print(
        f"All time: net balance {overall.net_balance:,.2f} {currency}"
        f" over {overall.transaction_count} transactions",
        file=out,
    )


async def _anomalies(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    transactions = await storage.list_transactions()
    flagged = detect_anomalies(transactions, args.category)
    if not flagged:
        print(f"No unusual {args.category} expenses.", file=out)
        return
    print(f"Unusual {args.category} expenses:", file=out)
    for transaction in flagged:
        print(f"  {format_transaction(transaction)}", file=out)


async def _export(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    gateway = ExportImportGateway(storage)
    if args.output_dir:
        path = await gateway.export_to_file(args.output_dir)
        print(f"Exported to {path}", file=out)
    else:
        print((await gateway.export_bytes()).decode("utf-8"), file=out)


async def _import(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> None:
    result = await ExportImportGateway(storage).import_file(args.path)
    print(f"{result.message} ({result.transaction_count} transactions)", file=out)


async def _clear(storage: TransactionStorageInterface, args: argparse.Namespace, out: TextIO) -> Optional[int]:
    if not args.yes:
        print("Refusing to clear the ledger without --yes.", file=sys.stderr)
        return 1
    await storage.clear_data()
    print("All data cleared.", file=out)
    return 0


COMMANDS = {
    "add": _add,
    "list": _list,
    "update": _update,
    "delete": _delete,
    "summary": _summary,
    "anomalies": _anomalies,
    "export": _export,
    "import": _import,
    "clear": _clear,
}


async def run(args: argparse.Namespace, out: TextIO) -> int:
    if args.user and get_settings().storage.backend == "api":
        print("--user is not supported with the api storage backend.", file=sys.stderr)
        return 2
    storage = await _open_storage(args)
    return await COMMANDS[args.command](storage, args, out) or 0


def main(argv: Optional[Iterable[str]] = None, out: Optional[TextIO] = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)
    configure_logging(debug=args.debug or get_settings().app.debug_mode)
    out = out or sys.stdout

    try:
        return asyncio.run(run(args, out))
    except ValidationFailedError as e:
        for field, message in e.errors.items():
            print(f"{field}: {message}", file=sys.stderr)
        return 2
    except StorageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
