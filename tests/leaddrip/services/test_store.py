"""Tests for leaddrip.services.store — LeadStore against in-memory SQLite."""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from leaddrip.errors import InvalidConfiguration, StorageFailure
from leaddrip.models.lead import Lead
from leaddrip.models.run import SignalRun
from leaddrip.models.user_config import UserConfigRow
from leaddrip.schemas import LeadRecord


def _lead(domain, score=50.0, created_at=None, user_id='user-1'):
    created_at = created_at or datetime.now(timezone.utc)
    return LeadRecord(
        id=f'lead-{domain}',
        user_id=user_id,
        date=created_at.date().isoformat(),
        domain=domain,
        company_name=domain.split('.')[0].title(),
        score=score,
        created_at=created_at,
        updated_at=created_at,
    )


class TestUserConfig:

    def test_missing_config_is_none(self, store):
        assert store.get_user_config('nobody') is None

    def test_round_trip(self, store, make_config):
        config = make_config()
        store.save_user_config('user-1', config)
        loaded = store.get_user_config('user-1')
        assert loaded.icp.industries == ['SaaS']
        assert loaded.signals[0].id == 'sig_funding'

    def test_save_overwrites(self, store, make_config):
        store.save_user_config('user-1', make_config())
        store.save_user_config('user-1', make_config(industries=['Fintech']))
        assert store.get_user_config('user-1').icp.industries == ['Fintech']

    def test_invalid_stored_config_is_invalid_configuration(self, store, db_session):
        db_session.add(UserConfigRow(user_id='user-1', config={'signals': [{'id': 'x'}]}))
        db_session.commit()
        with pytest.raises(InvalidConfiguration):
            store.get_user_config('user-1')


class TestLists:

    def test_create_and_read_accounts(self, store):
        list_id = store.create_list('user-1', 'Targets', [
            {'domain': 'https://www.Acme.io/', 'company_name': 'Acme'},
            {'domain': 'acme.io'},
            {'domain': 'beta.com', 'status': 'paused'},
        ])
        assert store.get_lists('user-1', 'watch') == [{'id': list_id, 'name': 'Targets', 'type': 'watch'}]
        active = store.get_list_accounts(list_id)
        assert active == [{'domain': 'acme.io', 'company_name': 'Acme', 'status': 'active'}]
        assert len(store.get_list_accounts(list_id, status=None)) == 2

    def test_lists_filtered_by_type(self, store):
        store.create_list('user-1', 'Targets')
        assert store.get_lists('user-1', 'exclusion') == []


class TestLeads:

    def test_add_new_leads_inserts_and_returns_accepted(self, store):
        accepted = store.add_new_leads('user-1', [_lead('acme.io'), _lead('beta.com')], run_id='run-1')
        assert [l.domain for l in accepted] == ['acme.io', 'beta.com']
        assert {l.domain for l in store.get_stored_leads('user-1')} == {'acme.io', 'beta.com'}

    def test_existing_domain_is_not_overwritten(self, store):
        store.add_new_leads('user-1', [_lead('acme.io', score=80)])
        duplicate = _lead('acme.io', score=20).model_copy(update={'id': 'lead-other'})
        accepted = store.add_new_leads('user-1', [duplicate, _lead('beta.com')])
        assert [l.domain for l in accepted] == ['beta.com']
        stored = {l.domain: l.score for l in store.get_stored_leads('user-1')}
        assert stored['acme.io'] == 80

    def test_duplicates_within_one_batch_collapse(self, store):
        second = _lead('acme.io').model_copy(update={'id': 'lead-2'})
        accepted = store.add_new_leads('user-1', [_lead('acme.io'), second])
        assert len(accepted) == 1

    def test_same_domain_allowed_for_other_user(self, store):
        store.add_new_leads('user-1', [_lead('acme.io')])
        other = _lead('acme.io', user_id='user-2').model_copy(update={'id': 'lead-u2'})
        assert len(store.add_new_leads('user-2', [other])) == 1

    def test_conflict_between_check_and_insert_is_skipped(self, store, db_session):
        """A concurrent run writes acme.io after our existence check."""
        real_scalars = db_session.scalars
        calls = {'n': 0}

        def racing_scalars(*args, **kwargs):
            calls['n'] += 1
            rows = real_scalars(*args, **kwargs).all()
            if calls['n'] == 1:
                db_session.add(Lead(id='winner', user_id='user-1', domain='acme.io', date='2026-01-01',
                                    payload=_lead('acme.io').model_dump(mode='json')))
                db_session.commit()
            return MagicMock(all=MagicMock(return_value=rows))

        with patch.object(db_session, 'scalars', side_effect=racing_scalars):
            accepted = store.add_new_leads('user-1', [_lead('acme.io'), _lead('beta.com')])

        assert [l.domain for l in accepted] == ['beta.com']

    def test_stored_leads_newest_first_and_limited(self, store):
        now = datetime.now(timezone.utc)
        leads = [_lead(f'company{i}.com', created_at=now - timedelta(days=i)) for i in range(5)]
        store.add_new_leads('user-1', leads)
        recent = store.get_stored_leads('user-1', limit=3)
        assert [l.domain for l in recent] == ['company0.com', 'company1.com', 'company2.com']

    def test_recent_domains(self, store):
        store.add_new_leads('user-1', [_lead('acme.io'), _lead('beta.com')])
        assert store.get_recent_domains('user-1') == {'acme.io', 'beta.com'}


class TestDoNotContact:

    def test_entries_are_normalized_and_grouped(self, store):
        store.add_do_not_contact('user-1', 'https://WWW.Acme.io/about')
        store.add_do_not_contact('user-1', '  Beta Corp ', type='company', reason='customer')
        dnc = store.get_do_not_contact('user-1')
        assert dnc['domain'] == {'acme.io'}
        assert dnc['company'] == {'beta corp'}
        assert store.get_do_not_contact_domains('user-1') == {'acme.io'}

    def test_is_do_not_contact(self, store):
        store.add_do_not_contact('user-1', 'acme.io')
        store.add_do_not_contact('user-1', 'Beta Corp', type='company')
        assert store.is_do_not_contact('user-1', 'www.acme.io')
        assert store.is_do_not_contact('user-1', 'beta.com', company_name='beta corp')
        assert not store.is_do_not_contact('user-1', 'gamma.com')
        assert not store.is_do_not_contact('user-2', 'acme.io')


class TestRuns:

    def test_save_run_inserts_then_updates(self, store):
        run = SignalRun(user_id='user-1', mode='watch', list_id='list-1')
        store.save_run(run)
        assert store.get_run(run.id)['status'] == 'pending'

        run.start()
        run.increment('signal_evaluations', 3)
        run.add_error('evidence', 'EvidenceFetchFailure', 'all pages failed', unit='acme.io')
        run.complete()
        run.summary = 'done'
        store.save_run(run)

        saved = store.get_run(run.id)
        assert saved['status'] == 'completed'
        assert saved['mode'] == 'watch'
        assert saved['stats']['signal_evaluations'] == 3
        assert saved['error_count'] == 1
        assert saved['summary'] == 'done'
        assert saved['finished_at'] is not None

    def test_unknown_run_is_none(self, store):
        assert store.get_run('missing') is None


class TestStorageFailure:

    def test_database_errors_become_storage_failure(self, store, db_session):
        with patch.object(db_session, 'get', side_effect=OperationalError('SELECT', {}, Exception('db gone'))):
            with pytest.raises(StorageFailure) as exc_info:
                store.get_user_config('user-1')
        assert exc_info.value.fatal is True
