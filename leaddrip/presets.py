"""
Starter signal library and a demo user config.

New users begin from DEFAULT_SIGNALS and toggle or reweight from there.
"""
from leaddrip.schemas import ICP, Modes, Offer, SignalDefinition, UserConfig


DEFAULT_SIGNALS = [
    SignalDefinition(
        id='sig_funding_series',
        name='Recent funding round',
        question='Has {account} announced a funding round (seed, Series A-F) in the last 6 months?',
        category='funding_corporate',
        priority='high',
        weight=9,
        query_templates=['{industry} startup raises Series A {geo} {year}',
                         '{industry} company announces funding round {year}'],
        accepted_sources=['news', 'press_release', 'company_site', 'blog', 'directory'],
    ),
    SignalDefinition(
        id='sig_new_exec',
        name='New executive hire',
        question='Has {account} appointed a new C-level or VP executive recently?',
        category='leadership_org',
        priority='high',
        weight=8,
        query_templates=['{industry} company appoints new VP Sales {year}',
                         '{industry} names new chief revenue officer {geo}'],
        accepted_sources=['news', 'press_release', 'company_site', 'social'],
    ),
    SignalDefinition(
        id='sig_product_launch',
        name='Product launch',
        question='Has {account} launched a new product, platform or major feature recently?',
        category='product_strategy',
        priority='medium',
        weight=7,
        query_templates=['{industry} company launches new platform {year}'],
        accepted_sources=['news', 'press_release', 'company_site', 'blog'],
    ),
    SignalDefinition(
        id='sig_hiring_spree',
        name='Hiring spree',
        question='Is {account} hiring aggressively, especially in sales or go-to-market roles?',
        category='hiring_team',
        priority='medium',
        weight=7,
        query_templates=['{industry} company hiring sales team {geo}'],
        accepted_sources=['job_post', 'company_site', 'news'],
    ),
    SignalDefinition(
        id='sig_expansion',
        name='Market expansion',
        question='Is {account} expanding into new markets, regions or through new partnerships?',
        category='expansion_partnerships',
        priority='medium',
        weight=6,
        query_templates=['{industry} company expands to new market {year}',
                         '{industry} strategic partnership announced {geo}'],
        accepted_sources=['news', 'press_release', 'company_site'],
    ),
    SignalDefinition(
        id='sig_tech_change',
        name='Technology change',
        question='Is {account} adopting or migrating to new core technology?',
        category='technology_adoption',
        priority='low',
        weight=4,
        query_templates=['{industry} company migrates to new platform {year}'],
        accepted_sources=['blog', 'job_post', 'news', 'company_site'],
        enabled=False,
    ),
    SignalDefinition(
        id='sig_dq_layoffs',
        name='Recent layoffs',
        question='Has {account} announced layoffs or a hiring freeze recently?',
        category='disqualifier',
        priority='high',
        weight=0,
        accepted_sources=['news', 'press_release'],
        is_disqualifier=True,
    ),
]


def demo_user_config() -> UserConfig:
    """A complete, onboarded config that the simulated providers give good results for."""
    return UserConfig(
        offer=Offer(
            company_name='LeadDrip',
            description='Signal-based lead lists for outbound teams.',
            value_proposition='Booking meetings with accounts while the timing is right',
        ),
        icp=ICP(
            industries=['SaaS', 'Fintech'],
            geos=['United States'],
            target_roles=['VP Sales', 'Head of Growth', 'Chief Revenue Officer'],
        ),
        signals=[s.model_copy(deep=True) for s in DEFAULT_SIGNALS],
        modes=Modes(hunt_enabled=True, hunt_daily_limit=20, watch_enabled=True),
        onboarding_complete=True,
    )
