#!/usr/bin/env python3
"""Export admin payments (with GST breakdown) to CSV.

Usage:
    python scripts/export_payments.py --status success --plan pro -o payments.csv
"""

import argparse
import asyncio
import sys
from pathlib import Path

from paycore.core.exceptions import PayCoreException
from paycore.core.logger import init_logging
from paycore.core.session import admin_session
from paycore.models.payment_models import LedgerFilters
from paycore.services.admin_ledger import AdminPaymentLedger
from paycore.services.api_client import BackendClient


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--status", choices=["pending", "success", "failed"])
    parser.add_argument("--plan", dest="plan_id")
    parser.add_argument("--search")
    parser.add_argument("-o", "--output", type=Path)
    return parser.parse_args(argv)


async def run(args) -> int:
    filters = LedgerFilters(status=args.status, plan_id=args.plan_id, search=args.search)
    async with BackendClient(admin_session()) as client:
        ledger = AdminPaymentLedger(client)
        data = await ledger.export_filtered(filters)
    output = args.output or Path(ledger.export_filename())
    output.write_bytes(data)
    print(f'Exported payments to {output}')
    return 0


def main(argv=None) -> int:
    init_logging()
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except PayCoreException as e:
        print(f'❌ {e.message}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
