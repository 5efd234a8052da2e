import argparse
import asyncio
import json
import sys
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from couponhub.db.base import Base
from couponhub.db.session import SessionLocal, engine
from couponhub import models  # noqa: F401  (registers tables on Base.metadata)
from couponhub.services import campaigns as campaigns_service


async def init_db(target: AsyncEngine | None = None) -> None:
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def campaign_report() -> list[dict[str, Any]]:
    async with SessionLocal() as session:
        return await campaigns_service.campaign_usage_summary(session)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Coupon campaign utilities")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("init-db", help="Create campaign and coupon tables if they do not exist")
    subparsers.add_parser("campaign-report", help="Print every campaign with its coupon counts as JSON")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    if args.command == "init-db":
        asyncio.run(init_db())
        return True

    if args.command == "campaign-report":
        report = asyncio.run(campaign_report())
        json.dump(report, sys.stdout, indent=2, ensure_ascii=False)
        sys.stdout.write("\n")
        return True

    return False


def main():
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
