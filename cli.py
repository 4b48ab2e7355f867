#!/usr/bin/env python3
"""Simple CLI for exercising the payment planner locally"""

import argparse
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Optional

from payment_planner.chains import chain_name
from payment_planner.config import settings
from payment_planner.core.history import JsonFileStorage, PaymentLifecycleStore
from payment_planner.core.planner import PaymentTarget, PlannerStage, RouteDiscoveryService
from payment_planner.core.planner.models import describe_unavailability
from payment_planner.logging_config import setup_logging
from payment_planner.providers import AcrossProvider, HttpDepositIndexer, build_chain_readers


def format_amount(amount: int, decimals: int) -> str:
    value = Decimal(amount) / (Decimal(10) ** decimals)
    return f"{value:,.6f}".rstrip("0").rstrip(".")


def print_stage(stage: PlannerStage, completed) -> None:
    print(f"   ⏳ {stage.label}...")


def print_options(result) -> None:
    """Pretty print ranked payment options"""
    if result.error:
        print(f"❌ {result.error}")
        return

    if not result.options:
        print("❌ No payment options found")
        return

    target = result.target_token
    print("\n💳 Payment Options")
    print("=" * 60)
    if target:
        print(f"Paying in: {target.symbol} on {chain_name(target.chain_id)}")

    for i, option in enumerate(result.options, 1):
        token = option.display_token
        status = "✅" if option.can_meet_target else "⚠️ "
        balance = format_amount(option.balance, token.decimals)
        print(f"{i:2d}. {status} {option.mode.value:<7} {token.symbol:<8} on {chain_name(token.chain_id):<10} balance {balance:>14}")

        if option.quote:
            print(f"      input {format_amount(option.quote.input_amount, token.decimals)} "
                  f"→ output {option.quote.output_amount} (fees {option.quote.fees_total})")
        if option.swap_quote:
            print(f"      input {format_amount(option.swap_quote.input_amount, token.decimals)} "
                  f"→ expected {option.swap_quote.expected_output_amount}")
        if option.estimated_fill_time_sec is not None:
            print(f"      ~{option.estimated_fill_time_sec}s to arrive")
        if option.unavailability_reason is not None:
            print(f"      {describe_unavailability(option.unavailability_reason)}")

    if result.last_updated:
        updated = datetime.fromtimestamp(result.last_updated / 1000)
        print(f"\nUpdated: {updated:%Y-%m-%d %H:%M:%S}")


async def cli_plan(wallet: str, token: str, chain_id: int, amount: int, recipient: Optional[str], show_all: bool):
    """Plan payment options for a target amount"""
    print(f"🔍 Finding payment options for {wallet}...")

    provider = AcrossProvider()
    service = RouteDiscoveryService(
        provider,
        build_chain_readers(),
        show_unavailable=show_all or None,
        stage_listener=print_stage,
    )
    target = PaymentTarget(
        token_address=token,
        chain_id=chain_id,
        amount=amount,
        recipient=recipient or wallet,
    )

    result = await service.refresh(target, wallet)
    print_options(result)


async def cli_history(account: str, sync: bool, clear: bool):
    """Show stored payment history for an account"""
    readers = build_chain_readers()
    store = PaymentLifecycleStore(
        AcrossProvider(),
        JsonFileStorage(settings.history_storage_path),
        readers,
        HttpDepositIndexer() if sync else None,
    )

    try:
        if clear:
            await store.initialize(account)
            store.clear(account)
            print(f"🧹 Cleared payment history for {account}")
            return

        await store.initialize(account)
        entries = store.get_snapshot().entries

        print(f"\n📜 Payment History for {account}")
        print("=" * 60)
        if not entries:
            print("No payments recorded")
            return

        for entry in entries:
            created = datetime.fromtimestamp(entry.created_at / 1000)
            amount = format_amount(entry.input_amount, entry.input_token.decimals)
            route = chain_name(entry.origin_chain_id)
            if entry.destination_chain_id != entry.origin_chain_id:
                route = f"{route} → {chain_name(entry.destination_chain_id)}"
            print(f"{created:%Y-%m-%d %H:%M}  {entry.mode.value:<7} {amount:>14} {entry.input_token.symbol:<8} "
                  f"{route:<24} {entry.status.label}")
            for item in entry.timeline:
                tx = f" ({item.tx_hash})" if item.tx_hash else ""
                print(f"      - {item.label}{tx}")
            if entry.errors:
                print(f"      ⚠️  {'; '.join(entry.errors)}")
    finally:
        store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Payment Planner CLI")
    subparsers = parser.add_subparsers(dest="command")

    plan_parser = subparsers.add_parser("plan", help="Rank payment options for a target amount")
    plan_parser.add_argument("--wallet", required=True, help="Payer wallet address")
    plan_parser.add_argument("--token", required=True, help="Target token address")
    plan_parser.add_argument("--chain", required=True, type=int, help="Target chain id")
    plan_parser.add_argument("--amount", required=True, type=int, help="Target amount in base units")
    plan_parser.add_argument("--recipient", help="Recipient address (default: wallet)")
    plan_parser.add_argument("--all", action="store_true", help="Include options that cannot cover the amount")

    history_parser = subparsers.add_parser("history", help="Show stored payment history")
    history_parser.add_argument("--account", required=True, help="Account address")
    history_parser.add_argument("--sync", action="store_true", help="Merge deposits from the remote indexer")
    history_parser.add_argument("--clear", action="store_true", help="Delete the stored history")

    return parser


async def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    setup_logging()
    command = args.command.lower()

    if command == "plan":
        if args.amount < 0:
            raise ValueError("Amount must not be negative")
        await cli_plan(args.wallet, args.token, args.chain, args.amount, args.recipient, args.all)

    elif command == "history":
        await cli_history(args.account, args.sync, args.clear)

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
