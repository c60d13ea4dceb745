"""Operator command line interface.

Provides operational tools for:
- Schema creation
- Confirmation sweeps outside the cron schedule
- Inspecting and releasing held pay claims (after an uncertain transfer)
- Serving the API

Usage:
    usdc-payroll init-db
    usdc-payroll sweep [--batch-id X]
    usdc-payroll claims [--batch-id X]
    usdc-payroll release-claim --item-id X --token CLAIM:...
    usdc-payroll serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from usdc_payroll.chain import ChainGateway, build_chain_gateway
from usdc_payroll.config import Settings, get_settings
from usdc_payroll.database import create_schema, init_db
from usdc_payroll.logging_config import configure_logging
from usdc_payroll.services import ConfirmationEngine, PayrollItemStore

logger = logging.getLogger(__name__)


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayrollCli:
    """Operator Command Line Interface."""

    def __init__(
        self,
        settings: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        chain_gateway: ChainGateway | None = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.chain_gateway = chain_gateway
        self._engine = None
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="usdc-payroll",
            description="USDC payroll operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser("init-db", help="Create database tables")

        sweep = subparsers.add_parser(
            "sweep",
            help="Confirm submitted items against the chain",
        )
        sweep.add_argument(
            "--batch-id",
            type=parse_uuid,
            help="Only confirm items of this batch",
        )

        claims = subparsers.add_parser(
            "claims",
            help="List items holding a pay claim",
        )
        claims.add_argument(
            "--batch-id",
            type=parse_uuid,
            help="Only list claims of this batch",
        )

        release = subparsers.add_parser(
            "release-claim",
            help="Release a held claim after reconciling against the chain",
        )
        release.add_argument(
            "--item-id",
            type=parse_uuid,
            required=True,
            help="Payroll item ID",
        )
        release.add_argument(
            "--token",
            type=str,
            required=True,
            help="Claim token currently held on the item",
        )

        subparsers.add_parser("serve", help="Run the API server")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        if parsed.command == "serve":
            from usdc_payroll.__main__ import main as serve

            serve()
            return 0

        return asyncio.run(self.dispatch(parsed))

    async def run_async(self, args: list[str]) -> int:
        """Run an async command inside an already running event loop."""
        return await self.dispatch(self.parser.parse_args(args))

    async def dispatch(self, parsed: argparse.Namespace) -> int:
        settings = self._settings()
        configure_logging(settings.log_level)

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "init-db": self._cmd_init_db,
            "sweep": self._cmd_sweep,
            "claims": self._cmd_claims,
            "release-claim": self._cmd_release_claim,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return await handler(parsed)
        finally:
            if self._engine is not None:
                await self._engine.dispose()
                self._engine = None

    # =========================================================================
    # Commands
    # =========================================================================

    async def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create database tables."""
        engine, _ = init_db(self._settings())
        try:
            await create_schema(engine)
        finally:
            await engine.dispose()
        print("Schema created.")
        return 0

    async def _cmd_sweep(self, args: argparse.Namespace) -> int:
        """Run a confirmation sweep."""
        gateway = self._gateway()
        if gateway is None:
            print("Chain is not configured (MISSING_CONFIG)", file=sys.stderr)
            return 2

        async with self._sessions()() as session:
            engine = ConfirmationEngine(
                PayrollItemStore(session), gateway, read_policy=self._settings().read_policy
            )
            summary = await engine.sweep(args.batch_id)

        print(json.dumps(asdict(summary), indent=2, default=str))
        return 0

    async def _cmd_claims(self, args: argparse.Namespace) -> int:
        """List items holding a pay claim."""
        async with self._sessions()() as session:
            items = await PayrollItemStore(session).list_held_claims(args.batch_id)

        rows = [
            {
                "item_id": str(item.id),
                "batch_id": str(item.batch_id),
                "amount_usdc": str(item.amount_usdc),
                "claim_token": item.claim_token,
                "created_at": item.created_at.isoformat(),
            }
            for item in items
        ]
        print(json.dumps(rows, indent=2))
        return 0

    async def _cmd_release_claim(self, args: argparse.Namespace) -> int:
        """Release a held claim, only if it still matches the given token."""
        async with self._sessions()() as session:
            released = await PayrollItemStore(session).release_claim(args.item_id, args.token)

        if not released:
            print(f"Claim on {args.item_id} not released: token does not match", file=sys.stderr)
            return 1

        logger.warning(
            "Claim released by operator",
            extra={"item_id": str(args.item_id), "claim_token": args.token},
        )
        print(f"Released claim on {args.item_id}")
        return 0

    # =========================================================================
    # Helpers
    # =========================================================================

    def _settings(self) -> Settings:
        if self.settings is None:
            self.settings = get_settings()
        return self.settings

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        if self.session_factory is None:
            self._engine, self.session_factory = init_db(self._settings())
        return self.session_factory

    def _gateway(self) -> ChainGateway | None:
        if self.chain_gateway is None:
            self.chain_gateway = build_chain_gateway(self._settings())
        return self.chain_gateway


def main() -> int:
    """CLI entry point."""
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
