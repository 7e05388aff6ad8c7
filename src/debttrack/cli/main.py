#!/usr/bin/env python3
"""
debttrack CLI - credit card ledger from bank messages.

Usage:
    debttrack parse "Rs.2500 spent on HDFC Bank Credit Card xx1234 at AMAZON" --sender AD-HDFCBK
    debttrack scan --messages sms.json --db ledger.db --export ledger.xlsx
    debttrack project --db ledger.db
    debttrack stats --db ledger.db
"""

import argparse
import json
import logging
import sys
import threading
from decimal import Decimal
from typing import Optional

from debttrack.core.config import ScanConfig
from debttrack.core.database import LedgerStore
from debttrack.core.exceptions import DebtTrackError, ScanCancelled, StorageFailure
from debttrack.parsers.sms.models import CreditCardRecord, ParseOutcome, RawMessage, datetime_to_ms, utc_now
from debttrack.parsers.sms.parser import MessageParser
from debttrack.services.message_source import JsonFileMessageSource
from debttrack.services.projections import PaymentScenario, compute_projections, minimum_payment_warning
from debttrack.services.scanner import ScanOrchestrator, ScanProgress

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, debug: bool = False):
    """Configure logging."""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def load_config(path: Optional[str]) -> ScanConfig:
    return ScanConfig.from_json(path) if path else ScanConfig()


def fmt_money(value: Optional[Decimal]) -> str:
    return f"Rs.{value:,.2f}" if value is not None else "-"


def print_account(account: CreditCardRecord):
    flag = " (needs verification)" if account.needs_verification else ""
    print(f"  {account.bank_name} xx{account.last_four_digits} [{account.id}]{flag}")
    print(f"    Confidence:       {account.confidence}")
    print(f"    Credit limit:     {fmt_money(account.credit_limit)}")
    print(f"    Available credit: {fmt_money(account.available_credit)}")
    print(f"    Total due:        {fmt_money(account.total_due)}")
    print(f"    Minimum due:      {fmt_money(account.minimum_due)}")
    print(f"    Due date:         {account.due_date or '-'}")


def print_outcome(outcome: ParseOutcome):
    if not outcome.relevant:
        print("Not a credit card message")
        return
    if not outcome.success:
        print(f"Not extracted: {outcome.error} ({outcome.error_code})")
        return

    print(f"Bank: {outcome.bank_name}  Segments: {outcome.segments}")
    print(f"\nAccounts ({len(outcome.accounts)}):")
    for account in outcome.accounts:
        print_account(account)

    if outcome.transactions:
        print(f"\nTransactions ({len(outcome.transactions)}):")
        for t in outcome.transactions:
            declined = " DECLINED" if t.declined else ""
            print(f"  {t.date} {t.time or '-':<8} {t.type.value:<14} {fmt_money(t.amount):>14}  "
                  f"{t.merchant or '-'} [{t.category or '-'}]{declined}")
    for s in outcome.statements:
        print(f"\nStatement {s.statement_date} for {s.card_id}: total {fmt_money(s.total_due)}, "
              f"minimum {fmt_money(s.minimum_due)}, due {s.due_date or '-'}")
    for r in outcome.reminders:
        print(f"\nReminder for {r.card_id}: {fmt_money(r.amount)} due {r.due_date or '-'}")
    for r in outcome.rewards:
        print(f"\nReward for {r.card_id}: {fmt_money(r.amount)} on {r.date}")
    for warning in outcome.warnings:
        print(f"\nWarning: {warning}")


def print_scenario(label: str, scenario: PaymentScenario):
    if not scenario.converges:
        print(f"  {label:<12} {fmt_money(scenario.payment_amount):>14}  never pays off (below monthly interest)")
        return
    savings = ""
    if scenario.savings_vs_minimum:
        savings = f", saves {fmt_money(scenario.savings_vs_minimum)}"
    print(f"  {label:<12} {fmt_money(scenario.payment_amount):>14}  {scenario.months} months, "
          f"interest {fmt_money(scenario.total_interest)}{savings}")


# ============================================================================
# Command Handlers
# ============================================================================

def cmd_parse(args, config: ScanConfig):
    """Handle parse command - extract one message, no persistence."""
    received_at_ms = args.received_at if args.received_at is not None else datetime_to_ms(utc_now())
    message = RawMessage(sender=args.sender, body=args.body, received_at_ms=received_at_ms)
    outcome = MessageParser(config).parse_one(message)

    if args.json:
        print(json.dumps({
            "success": outcome.success,
            "relevant": outcome.relevant,
            "bank_name": outcome.bank_name,
            "error": outcome.error,
            "error_code": outcome.error_code,
            "accounts": [a.to_dict() for a in outcome.accounts],
            "transactions": [t.to_dict() for t in outcome.transactions],
            "statements": [s.to_dict() for s in outcome.statements],
            "reminders": [r.to_dict() for r in outcome.reminders],
            "rewards": [r.to_dict() for r in outcome.rewards],
            "warnings": outcome.warnings,
        }, indent=2))
    else:
        print_outcome(outcome)
    return 0 if outcome.success else 2


def cmd_scan(args, config: ScanConfig):
    """Handle scan command - run the full pipeline over a message export."""
    if args.workers:
        config.max_workers = args.workers

    store = LedgerStore(args.db) if args.db else None
    orchestrator = ScanOrchestrator(JsonFileMessageSource(args.messages), store=store, config=config)
    cancel_event = threading.Event()

    def progress(p: ScanProgress):
        if args.verbose or args.debug:
            return
        print(f"\r  [{p.percent:3d}%] {p.stage:<10} {p.message:<50}", end="", flush=True)

    print(f"\nScanning {args.messages}...")
    try:
        result = orchestrator.run_scan(progress_callback=progress, cancel_event=cancel_event)
    except KeyboardInterrupt:
        cancel_event.set()
        raise
    except StorageFailure as e:
        print(f"\nSave failed: {e.message}")
        if e.result is not None and args.export:
            from debttrack.reports.ledger_report import export_excel
            export_excel(args.export, e.result.accounts, e.result.transactions, e.result.statements)
            print(f"Unsaved result exported to {args.export}")
        return 1
    finally:
        if store is not None:
            store.close()
    print()

    stats = result.stats
    print(f"\nScan Results:")
    print(f"  Messages read:       {stats.total_messages}")
    print(f"  Relevant:            {stats.relevant_messages}")
    print(f"  Malformed:           {stats.malformed}")
    print(f"  Unrecognized:        {stats.unrecognized}")
    print(f"  Failed:              {stats.failed}")
    print(f"  Accounts:            {stats.accounts}")
    print(f"  Transactions:        {stats.transactions} ({stats.duplicates} duplicates skipped)")
    print(f"  Statements:          {stats.statements}")
    print(f"  Reminders:           {stats.reminders}")
    print(f"  Rewards:             {stats.rewards}")

    if result.accounts:
        print(f"\nAccounts:")
        for account in result.accounts:
            print_account(account)

    if args.export:
        from debttrack.reports.ledger_report import export_excel
        path = export_excel(args.export, result.accounts, result.transactions, result.statements)
        print(f"\nReport written to {path}")

    if store is not None and result.saved:
        print(f"\nLedger saved to {args.db}")
    return 0


def cmd_project(args, config: ScanConfig):
    """Handle project command - payoff projections for stored accounts."""
    with LedgerStore(args.db) as store:
        accounts = store.load_accounts()

    if args.account:
        accounts = [a for a in accounts if a.id == args.account]
        if not accounts:
            print(f"Account not found: {args.account}")
            return 1

    if not accounts:
        print("No accounts in ledger")
        return 0

    for account in accounts:
        print(f"\n{account.bank_name} xx{account.last_four_digits} "
              f"(balance {fmt_money(account.outstanding)}, APR {account.estimated_apr}%)")
        projections = compute_projections(account)
        if projections is None:
            print("  Balance or minimum due unknown, no projection")
            continue

        interest = projections.interest
        print(f"  Interest if unpaid: {fmt_money(interest.monthly)}/month, "
              f"{fmt_money(interest.quarterly)}/quarter, {fmt_money(interest.yearly)}/year")
        print_scenario("Minimum", projections.min_payment)
        print_scenario("Double", projections.double_payment)
        print_scenario("Recommended", projections.recommended_payment)

        warning = minimum_payment_warning(account)
        if warning is not None and warning.months_to_payoff is None:
            print(f"  Warning: the minimum due does not cover {fmt_money(warning.monthly_interest)} "
                  f"monthly interest; pay at least {fmt_money(warning.recommended_payment)}")
    return 0


def cmd_stats(args, config: ScanConfig):
    """Handle stats command - ledger totals."""
    with LedgerStore(args.db) as store:
        stats = store.get_storage_stats()

    print(f"\nLedger Summary ({args.db}):")
    print(f"  Accounts:           {stats['accounts']}")
    print(f"  Transactions:       {stats['transactions']}")
    print(f"  Statements:         {stats['statements']}")
    print(f"  Reminders:          {stats['reminders']}")
    print(f"  Rewards:            {stats['rewards']}")
    print(f"  Total debt:         {fmt_money(stats['total_debt'])}")
    print(f"  Total credit limit: {fmt_money(stats['total_credit_limit'])}")
    print(f"  Utilization:        {stats['utilization_percent']}%")
    last_scan = stats["last_scan_ms"]
    print(f"  Last scan (ms):     {last_scan if last_scan is not None else 'never'}")
    return 0


# ============================================================================
# Main Entry Point
# ============================================================================

def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog='debttrack',
        description='debttrack - credit card ledger from bank messages',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  debttrack parse "Rs.2500 spent on HDFC Bank Credit Card xx1234 at AMAZON" --sender AD-HDFCBK
  debttrack scan --messages sms.json --db ledger.db --workers 4
  debttrack scan --messages sms.json --export ledger.xlsx
  debttrack project --db ledger.db --account hdfc_bank_1234
  debttrack stats --db ledger.db
        """
    )

    # Global arguments
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug output')
    parser.add_argument('--config', '-c', help='Scan config (JSON)')

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Command')

    # parse command
    parse_parser = subparsers.add_parser('parse', help='Extract a single message')
    parse_parser.add_argument('body', help='Message text')
    parse_parser.add_argument('--sender', '-s', default='', help='Sender id (e.g. AD-HDFCBK)')
    parse_parser.add_argument('--received-at', type=int, help='Receipt time in epoch ms (default: now)')
    parse_parser.add_argument('--json', action='store_true', help='Print records as JSON')

    # scan command
    scan_parser = subparsers.add_parser('scan', help='Scan a message export')
    scan_parser.add_argument('--messages', '-m', required=True, help='JSON file of messages')
    scan_parser.add_argument('--db', help='Ledger database (omit for a dry run)')
    scan_parser.add_argument('--workers', '-w', type=int, help='Extraction worker threads')
    scan_parser.add_argument('--export', '-e', help='Write an Excel report')

    # project command
    project_parser = subparsers.add_parser('project', help='Interest and payoff projections')
    project_parser.add_argument('--db', required=True, help='Ledger database')
    project_parser.add_argument('--account', '-a', help='Account id (default: all)')

    # stats command
    stats_parser = subparsers.add_parser('stats', help='Ledger totals')
    stats_parser.add_argument('--db', required=True, help='Ledger database')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    # Setup
    setup_logging(args.verbose, args.debug)

    # Route to command handler
    try:
        config = load_config(args.config)
        if args.command == 'parse':
            return cmd_parse(args, config)
        elif args.command == 'scan':
            return cmd_scan(args, config)
        elif args.command == 'project':
            return cmd_project(args, config)
        elif args.command == 'stats':
            return cmd_stats(args, config)
        else:
            parser.print_help()
            return 1

    except (KeyboardInterrupt, ScanCancelled):
        print("\nOperation cancelled")
        return 130
    except DebtTrackError as e:
        print(f"\nError: {e.message}")
        if args.debug:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
