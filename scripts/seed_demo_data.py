#!/usr/bin/env python3
"""
Seed a demo user for local runs.

Creates:
  1. A complete user config (default signal library, SaaS/Fintech in the US)
  2. A watch list of mock accounts
  3. A do-not-contact entry, so one mock company is always filtered out

Usage:
    python scripts/seed_demo_data.py                 # seed user "demo"
    python scripts/seed_demo_data.py --user alice    # seed another user
    python scripts/seed_demo_data.py --clear         # wipe the user's data first

Then: python scripts/run_pipeline.py --user demo --simulated
"""
import argparse

from sqlalchemy import delete, select

from leaddrip.database import get_session, init_db
from leaddrip.logging_config import configure_logging
from leaddrip.models.db_run import DbSignalRun
from leaddrip.models.do_not_contact import DoNotContact
from leaddrip.models.lead import Lead
from leaddrip.models.user_config import UserConfigRow
from leaddrip.models.watch_list import ListAccount, WatchList
from leaddrip.presets import demo_user_config
from leaddrip.services.simulated import MOCK_COMPANIES
from leaddrip.services.store import LeadStore


def clear_user(user_id):
    session = get_session()
    try:
        list_ids = session.scalars(select(WatchList.id).where(WatchList.user_id == user_id)).all()
        if list_ids:
            session.execute(delete(ListAccount).where(ListAccount.list_id.in_(list_ids)))
        session.execute(delete(WatchList).where(WatchList.user_id == user_id))
        session.execute(delete(DoNotContact).where(DoNotContact.user_id == user_id))
        session.execute(delete(Lead).where(Lead.user_id == user_id))
        session.execute(delete(DbSignalRun).where(DbSignalRun.user_id == user_id))
        session.execute(delete(UserConfigRow).where(UserConfigRow.user_id == user_id))
        session.commit()
    finally:
        session.close()
    print(f"Cleared data for {user_id}")


def seed(user_id):
    store = LeadStore()
    store.save_user_config(user_id, demo_user_config())
    print(f"Saved config for {user_id}")

    accounts = [{'domain': c['domain'], 'company_name': c['name']} for c in MOCK_COMPANIES[:5]]
    list_id = store.create_list(user_id, 'Q3 target accounts', accounts)
    print(f"Created watch list {list_id} with {len(accounts)} accounts")

    blocked = MOCK_COMPANIES[-1]
    store.add_do_not_contact(user_id, blocked['domain'], type='domain', reason='Existing customer')
    print(f"Added {blocked['domain']} to do-not-contact")
    return list_id


def main():
    parser = argparse.ArgumentParser(description='Seed demo data for local runs.')
    parser.add_argument('--user', default='demo')
    parser.add_argument('--clear', action='store_true', help="Wipe the user's data before seeding")
    args = parser.parse_args()

    configure_logging()
    init_db()
    if args.clear:
        clear_user(args.user)
    list_id = seed(args.user)
    print(f"\nDone. Try: python scripts/run_pipeline.py --user {args.user} --mode watch --list-id {list_id} --simulated")


if __name__ == '__main__':
    main()
