"""
Comandi pianificati
Progetto: Billing Engine (Facturation)

Uso:
    python -m app.commands expire-quotes
    python -m app.commands check-reminders
    python -m app.commands renew-subscriptions --days-before 3
    python -m app.commands init-db

Ogni comando apre una sessione, esegue l'operazione del motore e
stampa i conteggi. Exit code 0 in caso di successo, 1 in caso di errore.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from app.core.config import settings
from app.core.database import background_session, close_db, create_schema
from app.services.billing_engine import BillingEngine
from app.services.reminder_service import ReminderService
from app.services.subscription_service import SubscriptionService

logger = logging.getLogger("app.commands")


async def expire_quotes() -> None:
    async with background_session("expire-quotes") as db:
        count = await BillingEngine().sweep_expired_quotes(db)
    print(f"Preventivi scaduti: {count}")


async def check_reminders() -> None:
    async with background_session("check-reminders") as db:
        stats = await ReminderService().process_reminders(db)
    print(
        f"Fatture controllate: {stats['checked']}, "
        f"solleciti inviati: {stats['dispatched']}, saltati: {stats['skipped']}"
    )


async def renew_subscriptions(days_before: int) -> None:
    async with background_session("renew-subscriptions") as db:
        stats = await SubscriptionService().renew_due(db, days_before=days_before)
    print(f"Abbonamenti rinnovati: {stats['renewed']}, falliti: {stats['failed']}")
    if stats["failed"]:
        raise RuntimeError(f"{stats['failed']} rinnovi falliti")


async def init_db() -> None:
    await create_schema()
    print("Schema database creato")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="app.commands", description=settings.app_name)
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("expire-quotes", help="Scade i preventivi oltre la validità")
    subparsers.add_parser("check-reminders", help="Invia i solleciti delle fatture scadute")
    renew = subparsers.add_parser("renew-subscriptions", help="Rinnova gli abbonamenti in scadenza")
    renew.add_argument(
        "--days-before",
        type=int,
        default=0,
        help="Rinnova i periodi che terminano entro N giorni (default: 0)",
    )
    subparsers.add_parser("init-db", help="Crea le tabelle mancanti")
    return parser


async def run(args: argparse.Namespace) -> None:
    try:
        if args.command == "expire-quotes":
            await expire_quotes()
        elif args.command == "check-reminders":
            await check_reminders()
        elif args.command == "renew-subscriptions":
            await renew_subscriptions(args.days_before)
        elif args.command == "init-db":
            await init_db()
    finally:
        await close_db()


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run(args))
    except Exception:
        logger.exception("Comando %s fallito", args.command)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
