"""
Lead store — SQLAlchemy persistence behind the pipeline.

Every read and write opens its own session, commits or rolls back, and always
closes. Database errors surface as StorageFailure, which is run-fatal.
"""
import logging
import uuid
from contextlib import contextmanager
from typing import Dict, Iterable, List, Optional, Set

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from leaddrip import database
from leaddrip.errors import InvalidConfiguration, StorageFailure
from leaddrip.models.db_run import DbSignalRun
from leaddrip.models.do_not_contact import DoNotContact
from leaddrip.models.lead import Lead
from leaddrip.models.user_config import UserConfigRow
from leaddrip.models.watch_list import ListAccount, WatchList
from leaddrip.pipeline.dedup import normalize_domain
from leaddrip.schemas import LeadRecord, UserConfig

logger = logging.getLogger('services.store')

STORED_LEAD_WINDOW = 500
RUN_ERROR_HISTORY = 50


class LeadStore:

    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    def _new_session(self):
        if self._session_factory is not None:
            return self._session_factory()
        return database.get_session()

    @contextmanager
    def _session(self, action: str):
        session = self._new_session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Store failed to %s: %s", action, e)
            raise StorageFailure(f"Could not {action}: {e}") from e
        finally:
            session.close()

    # ── User config ───────────────────────────────────────────────────

    def get_user_config(self, user_id: str) -> Optional[UserConfig]:
        with self._session('load user config') as session:
            row = session.get(UserConfigRow, user_id)
            raw = dict(row.config) if row else None
        if raw is None:
            return None
        try:
            return UserConfig.model_validate(raw)
        except ValidationError as e:
            raise InvalidConfiguration(f"Stored config for {user_id} is invalid: {e}") from e

    def save_user_config(self, user_id: str, config: UserConfig):
        with self._session('save user config') as session:
            row = session.get(UserConfigRow, user_id)
            payload = config.model_dump(mode='json')
            if row is None:
                session.add(UserConfigRow(user_id=user_id, config=payload))
            else:
                row.config = payload

    # ── Lists ─────────────────────────────────────────────────────────

    def get_lists(self, user_id: str, list_type: str = None) -> List[Dict]:
        with self._session('load lists') as session:
            stmt = select(WatchList).where(WatchList.user_id == user_id)
            if list_type:
                stmt = stmt.where(WatchList.type == list_type)
            rows = session.scalars(stmt.order_by(WatchList.created_at)).all()
            return [{'id': r.id, 'name': r.name, 'type': r.type} for r in rows]

    def create_list(self, user_id: str, name: str, accounts: Iterable[Dict] = (),
                    list_type: str = 'watch', list_id: str = None) -> str:
        """Create a list with its accounts. accounts are {'domain', 'company_name'} dicts."""
        list_id = list_id or str(uuid.uuid4())
        with self._session('create list') as session:
            session.add(WatchList(id=list_id, user_id=user_id, name=name, type=list_type))
            session.flush()
            seen = set()
            for account in accounts:
                domain = normalize_domain(account['domain'])
                if not domain or domain in seen:
                    continue
                seen.add(domain)
                session.add(ListAccount(
                    list_id=list_id,
                    domain=domain,
                    company_name=account.get('company_name'),
                    status=account.get('status', 'active'),
                ))
        return list_id

    def get_list_accounts(self, list_id: str, status: str = 'active') -> List[Dict]:
        with self._session('load list accounts') as session:
            stmt = select(ListAccount).where(ListAccount.list_id == list_id)
            if status:
                stmt = stmt.where(ListAccount.status == status)
            rows = session.scalars(stmt.order_by(ListAccount.id)).all()
            return [
                {'domain': r.domain, 'company_name': r.company_name, 'status': r.status}
                for r in rows
            ]

    # ── Leads ─────────────────────────────────────────────────────────

    def get_stored_leads(self, user_id: str, limit: int = STORED_LEAD_WINDOW) -> List[LeadRecord]:
        """Most recent leads for a user, newest first."""
        with self._session('load leads') as session:
            rows = session.scalars(
                select(Lead)
                .where(Lead.user_id == user_id)
                .order_by(Lead.created_at.desc(), Lead.date.desc())
                .limit(limit)
            ).all()
            payloads = [dict(r.payload) for r in rows]
        return [LeadRecord.model_validate(p) for p in payloads]

    def get_recent_domains(self, user_id: str, limit: int = STORED_LEAD_WINDOW) -> Set[str]:
        with self._session('load lead domains') as session:
            domains = session.scalars(
                select(Lead.domain)
                .where(Lead.user_id == user_id)
                .order_by(Lead.created_at.desc(), Lead.date.desc())
                .limit(limit)
            ).all()
        return {normalize_domain(d) for d in domains}

    def add_new_leads(self, user_id: str, leads: Iterable[LeadRecord], run_id: str = None) -> List[LeadRecord]:
        """
        Insert leads whose domain the user doesn't have yet.

        Returns the accepted leads. A lead whose domain already exists (or was
        written by a concurrent run between the check and the insert) is
        dropped rather than overwriting the stored one.
        """
        leads = list(leads)
        if not leads:
            return []

        with self._session('check existing leads') as session:
            existing = set(session.scalars(
                select(Lead.domain).where(
                    Lead.user_id == user_id,
                    Lead.domain.in_([lead.domain for lead in leads]),
                )
            ).all())

        fresh, seen = [], set(existing)
        for lead in leads:
            if lead.domain in seen:
                continue
            seen.add(lead.domain)
            fresh.append(lead)

        try:
            with self._session('insert leads') as session:
                session.add_all([self._to_row(user_id, lead, run_id) for lead in fresh])
            return fresh
        except StorageFailure as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.warning("Bulk lead insert for %s hit a conflict, inserting one at a time", user_id)

        accepted = []
        for lead in fresh:
            try:
                with self._session(f'insert lead {lead.domain}') as session:
                    session.add(self._to_row(user_id, lead, run_id))
                accepted.append(lead)
            except StorageFailure as e:
                if not isinstance(e.__cause__, IntegrityError):
                    raise
                logger.info("Lead %s already stored by another run, skipping", lead.domain)
        return accepted

    @staticmethod
    def _to_row(user_id, lead: LeadRecord, run_id):
        return Lead(
            id=lead.id,
            user_id=user_id,
            run_id=run_id,
            domain=lead.domain,
            company_name=lead.company_name,
            date=lead.date,
            score=lead.score,
            status=lead.status,
            payload=lead.model_dump(mode='json'),
            created_at=lead.created_at,
        )

    # ── Do-not-contact ────────────────────────────────────────────────

    def add_do_not_contact(self, user_id: str, value: str, type: str = 'domain', reason: str = None):
        value = normalize_domain(value) if type == 'domain' else value.strip().lower()
        with self._session('add do-not-contact entry') as session:
            session.add(DoNotContact(user_id=user_id, type=type, value=value, reason=reason))

    def get_do_not_contact(self, user_id: str) -> Dict[str, Set[str]]:
        """{'domain': {...}, 'company': {...}, 'person': {...}}"""
        entries = {'domain': set(), 'company': set(), 'person': set()}
        with self._session('load do-not-contact list') as session:
            rows = session.execute(
                select(DoNotContact.type, DoNotContact.value).where(DoNotContact.user_id == user_id)
            ).all()
        for entry_type, value in rows:
            if entry_type == 'domain':
                entries['domain'].add(normalize_domain(value))
            elif entry_type in entries:
                entries[entry_type].add(value.strip().lower())
        return entries

    def get_do_not_contact_domains(self, user_id: str) -> Set[str]:
        return self.get_do_not_contact(user_id)['domain']

    def is_do_not_contact(self, user_id: str, domain: str, company_name: str = None) -> bool:
        dnc = self.get_do_not_contact(user_id)
        if normalize_domain(domain) in dnc['domain']:
            return True
        return bool(company_name) and company_name.strip().lower() in dnc['company']

    # ── Runs ──────────────────────────────────────────────────────────

    def save_run(self, run):
        """Insert or update the persisted copy of a SignalRun."""
        with self._session(f'save run {run.id}') as session:
            row = session.get(DbSignalRun, run.id)
            if row is None:
                row = DbSignalRun(
                    id=run.id,
                    user_id=run.user_id,
                    mode=run.mode,
                    list_id=run.list_id,
                    started_at=run.started_at,
                )
                session.add(row)
            row.status = run.status
            row.stats = run.stats.to_dict()
            row.errors = run.errors[-RUN_ERROR_HISTORY:]
            row.error_count = len(run.errors)
            row.error = run.error
            row.summary = run.summary or None
            row.usage = run.usage or None
            if run.finished_at is not None:
                row.finished_at = run.finished_at

    def get_run(self, run_id: str) -> Optional[Dict]:
        with self._session(f'load run {run_id}') as session:
            row = session.get(DbSignalRun, run_id)
            if row is None:
                return None
            return {
                'id': row.id,
                'user_id': row.user_id,
                'mode': row.mode,
                'status': row.status,
                'stats': dict(row.stats or {}),
                'error_count': row.error_count,
                'error': row.error,
                'summary': row.summary,
                'finished_at': row.finished_at,
            }
