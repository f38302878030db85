"""Tests for leaddrip.pipeline.planner — deterministic query planning."""
import pytest

from leaddrip.errors import InvalidConfiguration
from leaddrip.pipeline.planner import MAX_PLAN_QUERIES, plan_queries
from leaddrip.schemas import ICP, CompanySizeRange


@pytest.fixture
def icp():
    return ICP(industries=['SaaS'], geos=['United States'])


class TestPlanQueries:

    def test_expands_placeholders(self, icp, make_signal):
        plan = plan_queries(icp, [make_signal(query_templates=['{industry} raises Series A {geo} {year}'])],
                            year=2026)
        assert [q.query for q in plan.queries] == ['SaaS raises Series A United States 2026']
        assert plan.queries[0].target_signals == ['sig_funding']

    def test_template_without_placeholders_gets_icp_terms(self, icp, make_signal):
        plan = plan_queries(icp, [make_signal(query_templates=['series a announcement'])])
        assert plan.queries[0].query == 'series a announcement SaaS United States'

    def test_industry_by_geo_product(self, make_signal):
        icp = ICP(industries=['SaaS', 'Fintech'], geos=['US', 'UK'])
        plan = plan_queries(icp, [make_signal(query_templates=['{industry} funding {geo}'])])
        assert {q.query for q in plan.queries} == {
            'SaaS funding US', 'SaaS funding UK', 'Fintech funding US', 'Fintech funding UK',
        }

    def test_falls_back_to_category_templates(self, icp, make_signal):
        plan = plan_queries(icp, [make_signal(query_templates=[], category='hiring_team')])
        assert plan.queries[0].query == 'SaaS company hiring United States'

    def test_empty_icp_fails_fast(self, make_signal):
        with pytest.raises(InvalidConfiguration):
            plan_queries(ICP(), [make_signal()])

    def test_geo_only_icp_is_enough(self, make_signal):
        plan = plan_queries(ICP(geos=['Germany']), [make_signal(query_templates=['{industry} funding {geo}'])])
        assert plan.queries[0].query == 'funding Germany'

    def test_disqualifiers_and_disabled_signals_not_searched(self, icp, make_signal):
        plan = plan_queries(icp, [
            make_signal(id='dq', is_disqualifier=True, category='disqualifier', query_templates=['layoffs']),
            make_signal(id='off', enabled=False, query_templates=['disabled thing']),
            make_signal(id='on', query_templates=['funding']),
        ])
        targeted = {s for q in plan.queries for s in q.target_signals}
        assert targeted == {'on'}

    def test_only_disqualifiers_gives_broad_icp_queries(self, icp, make_signal):
        plan = plan_queries(icp, [make_signal(is_disqualifier=True, category='disqualifier')])
        assert [q.query for q in plan.queries] == ['SaaS companies United States']

    def test_duplicate_queries_merged_case_insensitively(self, icp, make_signal):
        plan = plan_queries(icp, [
            make_signal(id='a', query_templates=['Funding news']),
            make_signal(id='b', query_templates=['funding NEWS']),
        ])
        assert len(plan.queries) == 1
        assert plan.queries[0].target_signals == ['a', 'b']

    def test_summaries(self, make_signal):
        icp = ICP(industries=['SaaS'], geos=['US'], company_size_range=CompanySizeRange(min=50, max=500),
                  target_roles=['VP Sales'])
        plan = plan_queries(icp, [make_signal()])
        assert plan.icp_summary == 'Industries: SaaS; Geos: US; Size: 50-500 employees; Roles: VP Sales'
        assert 'Recent funding (high, w9)' in plan.signals_summary

    def test_summary_lists_exclusions(self, make_signal):
        icp = ICP(industries=['SaaS'], exclude_industries=['Gambling'], exclude_geos=['Russia'],
                  exclude_roles=['Intern'])
        plan = plan_queries(icp, [make_signal()])
        assert plan.icp_summary == ('Industries: SaaS; Excluding industries: Gambling; '
                                    'Excluding geos: Russia; Excluding roles: Intern')

    def test_open_ended_size(self, make_signal):
        icp = ICP(industries=['SaaS'], company_size_range=CompanySizeRange(min=200))
        assert 'Size: 200+ employees' in plan_queries(icp, [make_signal()]).icp_summary


class TestQueryCap:

    def _signal(self, make_signal, sid, priority, weight, count):
        return make_signal(id=sid, priority=priority, weight=weight,
                           query_templates=[f'{sid} query {i}' for i in range(count)])

    def test_never_exceeds_fifty(self, icp, make_signal):
        signals = [self._signal(make_signal, f's{i}', 'medium', 5, 20) for i in range(5)]
        plan = plan_queries(icp, signals, max_queries=500)
        assert len(plan.queries) == MAX_PLAN_QUERIES

    def test_every_signal_covered_before_extras(self, icp, make_signal):
        signals = [
            self._signal(make_signal, 'high', 'high', 9, 10),
            self._signal(make_signal, 'mid', 'medium', 5, 10),
            self._signal(make_signal, 'low', 'low', 2, 10),
        ]
        plan = plan_queries(icp, signals, max_queries=3)
        assert [q.target_signals for q in plan.queries] == [['high'], ['mid'], ['low']]

    def test_lowest_priority_dropped_first(self, icp, make_signal):
        signals = [
            self._signal(make_signal, 'low', 'low', 9, 1),
            self._signal(make_signal, 'high', 'high', 1, 1),
            self._signal(make_signal, 'mid', 'medium', 5, 1),
        ]
        plan = plan_queries(icp, signals, max_queries=2)
        assert [q.target_signals[0] for q in plan.queries] == ['high', 'mid']

    def test_weight_breaks_priority_ties(self, icp, make_signal):
        signals = [
            self._signal(make_signal, 'light', 'high', 2, 1),
            self._signal(make_signal, 'heavy', 'high', 8, 1),
        ]
        plan = plan_queries(icp, signals, max_queries=1)
        assert plan.queries[0].target_signals == ['heavy']
