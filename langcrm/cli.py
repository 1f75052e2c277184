"""Command line for the CRM core.

Usage:
    langcrm init-db
    langcrm prospects --search amina --service "Doc Translation" --window 1m
    langcrm completed
    langcrm clients
    langcrm tasks --pending
    langcrm metrics --window 3m --currency UGX
    langcrm export backups/crm.json
    langcrm import backups/crm.json
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from typing import Optional

from langcrm.backup import export_snapshot, import_snapshot, read_snapshot, write_snapshot
from langcrm.clients.views import list_clients
from langcrm.config import CRMConfig, load_config
from langcrm.currency import format_amount
from langcrm.errors import CRMError
from langcrm.models import ContactMethod, Currency, DateRange, SearchCriteria, ServiceType, TimeWindow
from langcrm.reporting.metrics import (
    MetricCard,
    expenditure_metric,
    prospect_metric,
    receipts_metric,
    service_metric,
)
from langcrm.runtime import CRM

URGENCY_MARKERS = {
    "Overdue": "🔴",
    "DueToday": "🟡",
    "Upcoming": "⚪",
    "Completed": "✅",
}


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _custom_range(args) -> Optional[DateRange]:
    if getattr(args, "start", None) and getattr(args, "end", None):
        return DateRange(start_date=args.start, end_date=args.end)
    return None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_init_db(crm: CRM, args) -> None:
    # Store initialisation happens on entering the CRM context
    print("✅ Database ready")


async def cmd_prospects(crm: CRM, args) -> None:
    criteria = SearchCriteria(
        search_term=args.search or "",
        service=ServiceType(args.service) if args.service else None,
        contact_method=args.contact_method,
        window=args.window,
        custom_range=_custom_range(args),
    )
    prospects = await crm.prospects.search(criteria)
    indicators = await crm.tasks.indicators()
    for p in prospects:
        badge = ""
        if p.id in indicators:
            ind = indicators[p.id]
            badge = f"  [{ind.count} open{' 🔴' if ind.has_overdue else ''}{' 🟡' if ind.has_due_today else ''}]"
        print(f"{p.date_of_contact}  {p.name:<30} {p.service_type.value:<18} {p.contact_method.value}{badge}")
    print(f"\n{len(prospects)} active prospects")


async def cmd_completed(crm: CRM, args) -> None:
    jobs = await crm.prospects.completed_jobs()
    for p in jobs:
        print(f"{p.completed_on}  {p.name:<30} {p.service_type.value:<18} {p.total_fee:,.2f}")
    print(f"\n{len(jobs)} completed jobs")


async def cmd_clients(crm: CRM, args) -> None:
    clients = await list_clients(crm.store)
    for c in clients:
        print(f"{c.client_ref:<18} {c.name:<30} {c.kind.value:<8} {c.service.value:<18} {c.total_fee:,.2f}")
    print(f"\n{len(clients)} clients")


async def cmd_tasks(crm: CRM, args) -> None:
    feed = await crm.tasks.feed(today=args.today, include_completed=not args.pending)
    for item in feed:
        marker = URGENCY_MARKERS.get(item.urgency.value, " ")
        print(f"{marker} {item.due_date}  {item.title:<40} {item.assigned_to}")
    print(f"\n{len(feed)} tasks")


def _print_card(title: str, card: MetricCard, money: bool = False) -> None:
    total = format_amount(card.total, card.currency) if money else f"{card.total:g}"
    print(f"{title}: {total} ({card.percentage_change:+d}% vs previous period)")
    for name, value in card.categories.items():
        print(f"   {name:<20} {value:g}")


async def cmd_metrics(crm: CRM, args) -> None:
    window, custom = args.window, _custom_range(args)
    currency = Currency(args.currency)
    active = await crm.prospects.search()
    payments = await crm.finance.list_payments()
    expenditures = await crm.finance.list_expenditures()
    _print_card("Prospects", prospect_metric(active, window, custom))
    _print_card("Services", service_metric(active, window, custom))
    _print_card("Receipts", receipts_metric(payments, window, currency, custom), money=True)
    _print_card("Expenditures", expenditure_metric(expenditures, window, currency, custom), money=True)


async def cmd_export(crm: CRM, args) -> None:
    snapshot = await export_snapshot(crm.store, crm.attribution)
    path = write_snapshot(snapshot, args.path)
    print(f"✅ Exported to {path}")


async def cmd_import(crm: CRM, args) -> None:
    result = await import_snapshot(crm.store, read_snapshot(args.path))
    imported = ", ".join(f"{k}: {v}" for k, v in result.imported.items())
    print(f"Imported {imported}; skipped {result.skipped}")
    for error in result.errors:
        print(f"   ⚠️  {error}")
    if not result.success:
        raise CRMError(f"{len(result.errors)} records could not be imported")


COMMANDS = {
    "init-db": cmd_init_db,
    "prospects": cmd_prospects,
    "completed": cmd_completed,
    "clients": cmd_clients,
    "tasks": cmd_tasks,
    "metrics": cmd_metrics,
    "export": cmd_export,
    "import": cmd_import,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="langcrm", description="Language-services CRM")
    parser.add_argument("--config", help="YAML config file (default: $LANGCRM_CONFIG)")
    parser.add_argument("--log-level", help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database tables")

    windows = [w.value for w in TimeWindow]

    def add_window_args(p, default: str) -> None:
        p.add_argument("--window", choices=windows, default=default)
        p.add_argument("--from", dest="start", type=date.fromisoformat, help="Custom range start")
        p.add_argument("--to", dest="end", type=date.fromisoformat, help="Custom range end")

    p = sub.add_parser("prospects", help="List active prospects")
    p.add_argument("--search", help="Match name, email, phone or notes")
    p.add_argument("--service", choices=[s.value for s in ServiceType])
    p.add_argument("--contact-method", choices=[m.value for m in ContactMethod])
    add_window_args(p, TimeWindow.ALL.value)

    sub.add_parser("completed", help="List completed jobs")
    sub.add_parser("clients", help="List students and converted job clients")

    p = sub.add_parser("tasks", help="Merged follow-up and communication feed")
    p.add_argument("--pending", action="store_true", help="Hide completed tasks")
    p.add_argument("--today", type=date.fromisoformat, help="Reference date (default: today)")

    p = sub.add_parser("metrics", help="Dashboard metric cards")
    add_window_args(p, TimeWindow.LAST_MONTH.value)
    p.add_argument("--currency", choices=[c.value for c in Currency], help="Receipts currency")

    p = sub.add_parser("export", help="Write a JSON snapshot of all data")
    p.add_argument("path")

    p = sub.add_parser("import", help="Add records from a JSON snapshot")
    p.add_argument("path")
    return parser


async def run(args, config: CRMConfig) -> None:
    if getattr(args, "currency", "unset") is None:
        args.currency = config.defaults.currency.value
    async with CRM.from_config(config) as crm:
        await COMMANDS[args.command](crm, args)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    configure_logging(args.log_level or config.log_level)
    try:
        asyncio.run(run(args, config))
    except CRMError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
