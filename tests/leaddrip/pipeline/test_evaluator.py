"""Tests for leaddrip.pipeline.evaluator — evidence-grounded signal answers."""
from leaddrip.errors import StructuredOutputError
from leaddrip.pipeline.evaluator import (
    build_signal_prompt, evaluate_candidate, evaluate_signal, overall_confidence, select_evidence,
)
from leaddrip.pipeline.evidence import make_chunk
from leaddrip.schemas import CandidateCompany, SignalAnswer, SignalMatch

FUNDING_URL = 'https://acme.io/news/series-a'
FUNDING = make_chunk(FUNDING_URL, 'Acme raised a $20 million Series A round led by Sequoia.')
HIRING = make_chunk('https://acme.io/careers', 'We are hiring account executives across North America.')

ACME = CandidateCompany(company_name='Acme', domain='acme.io', confidence=0.9)


def _answer(result='yes', confidence=0.9, urls=(FUNDING_URL,), reasoning='Raised a Series A.'):
    return SignalAnswer(result=result, confidence=confidence, evidence_urls=list(urls),
                        evidence_snippets=['Acme raised a $20 million Series A'], reasoning=reasoning)


class TestSelectEvidence:

    def test_category_tags_narrow_evidence(self, make_signal):
        assert select_evidence(make_signal(), [FUNDING, HIRING]) == [FUNDING]

    def test_accepted_sources_filter(self, make_signal):
        assert select_evidence(make_signal(accepted_sources=['news']), [FUNDING]) == []
        assert select_evidence(make_signal(accepted_sources=['press_release']), [FUNDING]) == [FUNDING]

    def test_untagged_category_keeps_everything(self, make_signal):
        signal = make_signal(category='risk_compliance')
        assert select_evidence(signal, [FUNDING, HIRING]) == [FUNDING, HIRING]

    def test_cap(self, make_signal):
        signal = make_signal(category='risk_compliance')
        assert len(select_evidence(signal, [FUNDING, HIRING], max_chunks=1)) == 1


class TestEvaluateSignal:

    def test_no_evidence_is_unknown_without_model_call(self, make_ctx, make_signal):
        ctx = make_ctx()
        match = evaluate_signal(ctx, ACME, make_signal(), [HIRING])

        assert match.result == 'unknown'
        assert match.confidence == 0.0
        assert ctx.run.stats.insufficient_evidence == 1
        assert ctx.run.stats.signal_evaluations == 1
        assert ctx.services.generation.calls == []

    def test_prompt_substitutes_account(self, make_ctx, make_signal, fakes):
        generation = fakes.Generation(lambda prompt, schema: _answer())
        ctx = make_ctx(generation=generation)

        evaluate_signal(ctx, ACME, make_signal(), [FUNDING])

        prompt = generation.calls[0]['prompt']
        assert 'QUESTION: Has Acme raised a funding round recently?' in prompt
        assert fakes.cited_urls(prompt) == [FUNDING_URL]
        assert generation.calls[0]['feature'] == 'scoring'

    def test_cited_yes_is_kept(self, make_ctx, make_signal, fakes):
        ctx = make_ctx(generation=fakes.Generation(
            lambda prompt, schema: _answer(urls=[FUNDING_URL, 'https://made-up.example/x'])))

        match = evaluate_signal(ctx, ACME, make_signal(), [FUNDING])

        assert match.result == 'yes'
        assert match.confidence == 0.9
        assert match.evidence_urls == [FUNDING_URL]

    def test_yes_without_valid_citation_is_demoted(self, make_ctx, make_signal, fakes):
        ctx = make_ctx(generation=fakes.Generation(
            lambda prompt, schema: _answer(urls=['https://made-up.example/x'])))

        match = evaluate_signal(ctx, ACME, make_signal(), [FUNDING])

        assert match.result == 'unknown'
        assert match.confidence == 0.0
        assert match.evidence_urls == []

    def test_no_answer_needs_no_citation(self, make_ctx, make_signal, fakes):
        ctx = make_ctx(generation=fakes.Generation(lambda prompt, schema: _answer(result='no', urls=[])))
        assert evaluate_signal(ctx, ACME, make_signal(), [FUNDING]).result == 'no'

    def test_generation_failure_is_recorded(self, make_ctx, make_signal, fakes):
        def handler(prompt, schema):
            raise StructuredOutputError('never valid', attempts=3)

        ctx = make_ctx(generation=fakes.Generation(handler))
        match = evaluate_signal(ctx, ACME, make_signal(), [FUNDING])

        assert match.result == 'unknown'
        assert ctx.run.errors[0]['kind'] == 'SignalEvaluationFailure'
        assert ctx.run.errors[0]['stage'] == 'evaluation'
        assert ctx.run.errors[0]['unit'] == 'acme.io'


class TestEvaluateCandidate:

    def test_one_match_per_enabled_signal(self, make_ctx, make_config, make_signal, fakes):
        config = make_config(signals=[
            make_signal(),
            make_signal(id='sig_off', enabled=False),
            make_signal(id='sig_hiring', name='Hiring', category='hiring_team',
                        question='Is {account} hiring?'),
        ])
        ctx = make_ctx(config=config, generation=fakes.Generation(
            lambda prompt, schema: _answer(urls=fakes.cited_urls(prompt)[:1], confidence=0.8)))

        report = evaluate_candidate(ctx, ACME, [FUNDING, HIRING])

        assert [m.signal_id for m in report.matches] == ['sig_funding', 'sig_hiring']
        assert report.overall_confidence == 0.8
        assert ctx.run.stats.signal_evaluations == 2


class TestOverallConfidence:

    def test_mean_of_yes_on_scoring_signals(self, make_signal):
        signals = [make_signal(id='a'), make_signal(id='b'), make_signal(id='dq', is_disqualifier=True)]
        matches = [
            SignalMatch(signal_id='a', signal_name='A', result='yes', confidence=0.8),
            SignalMatch(signal_id='b', signal_name='B', result='yes', confidence=0.6),
            SignalMatch(signal_id='dq', signal_name='DQ', result='yes', confidence=0.1),
        ]
        assert overall_confidence(matches, signals) == 0.7

    def test_no_yes_is_zero(self, make_signal):
        matches = [SignalMatch(signal_id='a', signal_name='A', result='no', confidence=0.9)]
        assert overall_confidence(matches, [make_signal(id='a')]) == 0.0


class TestPrompt:

    def test_lists_evidence_with_type_and_url(self, make_signal):
        prompt = build_signal_prompt(make_signal(), ACME, [FUNDING])
        assert 'COMPANY: Acme (acme.io)' in prompt
        assert f'[1] press_release | {FUNDING_URL}' in prompt
