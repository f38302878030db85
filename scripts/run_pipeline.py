#!/usr/bin/env python3
"""
Run one hunt or watch pass for a user and print the result as JSON.

Builds every client once, then hands them to run_pipeline().

Usage:
    python scripts/run_pipeline.py --user demo --simulated
    python scripts/run_pipeline.py --user demo --mode watch --domain acme.io --domain brightlane.com
    python scripts/run_pipeline.py --user demo --mode watch --list-id <list id> --limit 10

Requires: DATABASE_URL (defaults to sqlite:///leaddrip.db). Live runs also need
provider keys (OPENAI_API_KEY / ANTHROPIC_API_KEY, TAVILY_API_KEY / SERPAPI_KEY)
and optionally REDIS_URL for circuit breakers.
"""
import argparse
import json
import logging
import sys

import redis

from leaddrip.clients import build_services, get_redis_client
from leaddrip.config import RUN_MODE
from leaddrip.database import init_db
from leaddrip.errors import LeadDripError
from leaddrip.logging_config import configure_logging
from leaddrip.pipeline.base import RunOptions
from leaddrip.pipeline.coordinator import run_pipeline
from leaddrip.services.store import LeadStore

logger = logging.getLogger('scripts.run_pipeline')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Run the LeadDrip signal pipeline once.')
    parser.add_argument('--user', required=True, help='User whose config and lead history to use')
    parser.add_argument('--mode', choices=('hunt', 'watch'), default='hunt')
    parser.add_argument('--limit', type=int, default=None, help='Max candidates to research')
    parser.add_argument('--list-id', default=None, help='Watch list to re-check (watch mode)')
    parser.add_argument('--domain', action='append', dest='domains', default=None,
                        help='Domain to re-check (watch mode, repeatable)')
    parser.add_argument('--simulated', action='store_true', help='Use simulated providers')
    parser.add_argument('--budget', type=float, default=None, help='Wall-clock budget in seconds')
    parser.add_argument('--no-redis', action='store_true', help='Run without circuit breakers')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging()
    run_mode = 'simulated' if args.simulated else RUN_MODE

    redis_client = None
    if not args.no_redis and run_mode == 'live':
        redis_client = get_redis_client()
        try:
            redis_client.ping()
        except redis.RedisError as e:
            logger.warning("Redis unavailable, running without circuit breakers: %s", e)
            redis_client = None

    try:
        init_db()
        services = build_services(run_mode, redis_client=redis_client,
                                  search_needed=args.mode == 'hunt')
    except LeadDripError as e:
        logger.error("Could not start: %s", e)
        return 2

    result = run_pipeline(
        LeadStore(),
        args.user,
        None,
        RunOptions(
            mode=args.mode,
            limit=args.limit,
            list_id=args.list_id,
            domains=args.domains,
            budget_seconds=args.budget,
        ),
        services,
    )

    print(json.dumps({
        'run_id': result.run_id,
        'status': result.status,
        'summary': result.run.summary,
        'stats': result.stats,
        'errors': result.errors,
        'usage': result.usage,
        'leads': [
            {
                'domain': lead.domain,
                'company_name': lead.company_name,
                'score': lead.score,
                'why_now': lead.why_now,
                'linkedin_search_url': lead.linkedin_search_url,
            }
            for lead in result.leads
        ],
    }, indent=2, default=str))
    return 0 if result.status == 'completed' else 1


if __name__ == '__main__':
    sys.exit(main())
