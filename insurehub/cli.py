import argparse
import json
import logging
import sys
from datetime import date

from insurehub.db import get_session
from insurehub.errors import InsureHubError
from insurehub.services.catalog import get_client, get_policy
from insurehub.services.notifications import NotificationDispatcher
from insurehub.services.pricing.calculator import PremiumCalculator
from insurehub.services.pricing.profile import build_buyer_profile
from insurehub.services.renewal.sweeper import RenewalSweeper

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger("insurehub.cli")


def run_renewals_command(args):
    """Renewal status sweep: reminders, active -> due, grace reminder, due -> expired"""
    session = next(get_session())
    try:
        today = date.fromisoformat(args.date) if args.date else None
        logger.info("[CLI] Starting renewal sweep")
        result = RenewalSweeper(session, NotificationDispatcher(session)).run(today=today)
        print(json.dumps(result.as_dict()))
    except Exception as e:
        logger.exception(f"[CLI] Renewal sweep failed: {e}")
        sys.exit(1)
    finally:
        session.close()


def run_quote_command(args):
    session = next(get_session())
    try:
        policy = get_policy(session, args.policy_id)
        calculator = PremiumCalculator()
        if args.client_id is None:
            premium_range = calculator.quote_range(policy)
            print(json.dumps({
                "policy_id": policy.id,
                "premium_min": str(premium_range.premium_min),
                "premium_max": str(premium_range.premium_max),
            }))
            return
        profile = build_buyer_profile(get_client(session, args.client_id))
        print(json.dumps(calculator.quote(policy, profile).to_dict(), indent=2))
    except InsureHubError as e:
        logger.error(f"[CLI] Quote failed: {e}")
        sys.exit(1)
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description="insurehub operations CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    renewals_parser = subparsers.add_parser("renewals", help="Process renewal reminders and status changes")
    renewals_parser.add_argument("--date", help="Run as of this date (YYYY-MM-DD), defaults to today")

    quote_parser = subparsers.add_parser("quote", help="Print a premium quote")
    quote_parser.add_argument("--policy-id", type=int, required=True)
    quote_parser.add_argument("--client-id", type=int, help="Omit for the guest range")

    args = parser.parse_args()

    if args.command == "renewals":
        run_renewals_command(args)
    elif args.command == "quote":
        run_quote_command(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
