"""
Pydantic models for user configuration, LLM contracts, and pipeline records.

Anything a generation provider returns is validated against one of these
before the pipeline trusts it.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


SignalCategory = Literal[
    'funding_corporate',
    'leadership_org',
    'product_strategy',
    'hiring_team',
    'expansion_partnerships',
    'technology_adoption',
    'risk_compliance',
    'disqualifier',
]

Priority = Literal['low', 'medium', 'high']

EvidenceSourceType = Literal[
    'news',
    'press_release',
    'company_site',
    'job_post',
    'sec_filing',
    'blog',
    'social',
    'review',
    'directory',
    'other',
]

MatchResult = Literal['yes', 'no', 'unknown']

PRIORITY_RANK = {'low': 0, 'medium': 1, 'high': 2}


def utcnow():
    return datetime.now(timezone.utc)


# ── User configuration ───────────────────────────────────────────────────────

class CompanySizeRange(BaseModel):
    min: Optional[int] = None
    max: Optional[int] = None


class ICP(BaseModel):
    industries: List[str] = Field(default_factory=list)
    exclude_industries: List[str] = Field(default_factory=list)
    geos: List[str] = Field(default_factory=list)
    exclude_geos: List[str] = Field(default_factory=list)
    company_size_range: Optional[CompanySizeRange] = None
    target_roles: List[str] = Field(default_factory=list)
    exclude_roles: List[str] = Field(default_factory=list)


class SignalDefinition(BaseModel):
    id: str
    name: str
    question: str
    category: SignalCategory
    priority: Priority = 'medium'
    weight: float = Field(default=5, ge=0, le=10)
    query_templates: List[str] = Field(default_factory=list)
    accepted_sources: List[EvidenceSourceType] = Field(default_factory=list)
    is_disqualifier: bool = False
    enabled: bool = True


class Offer(BaseModel):
    company_name: str = ''
    description: str = ''
    value_proposition: str = ''


class Modes(BaseModel):
    hunt_enabled: bool = True
    hunt_daily_limit: int = Field(default=50, ge=1)
    watch_enabled: bool = False


class Schedule(BaseModel):
    timezone: str = 'UTC'
    daily_run_hour: int = Field(default=8, ge=0, le=23)


class UserConfig(BaseModel):
    version: int = 1
    offer: Offer = Field(default_factory=Offer)
    icp: ICP = Field(default_factory=ICP)
    signals: List[SignalDefinition] = Field(default_factory=list)
    modes: Modes = Field(default_factory=Modes)
    schedule: Schedule = Field(default_factory=Schedule)
    onboarding_complete: bool = False

    @property
    def enabled_signals(self) -> List[SignalDefinition]:
        return [s for s in self.signals if s.enabled]


# ── Query planning / search ──────────────────────────────────────────────────

class SearchQuery(BaseModel):
    query: str
    target_signals: List[str] = Field(default_factory=list)
    expected_source_types: List[EvidenceSourceType] = Field(default_factory=list)
    rationale: str = ''


class QueryPlan(BaseModel):
    queries: List[SearchQuery] = Field(default_factory=list, max_length=50)
    icp_summary: str = ''
    signals_summary: str = ''


class SearchResult(BaseModel):
    title: str = ''
    url: str
    snippet: str = ''
    published_date: Optional[str] = None


class SearchResponse(BaseModel):
    query: str = ''
    results: List[SearchResult] = Field(default_factory=list)
    total_results: Optional[int] = None


# ── Candidates ───────────────────────────────────────────────────────────────

class CandidateCompany(BaseModel):
    company_name: str
    domain: str
    source_url: str = ''
    snippet: str = ''
    confidence: float = Field(default=0.0, ge=0, le=1)


class CandidateExtractionResult(BaseModel):
    candidates: List[CandidateCompany] = Field(default_factory=list)
    total_results_processed: int = 0


# ── Evidence / evaluation ────────────────────────────────────────────────────

class EvidenceChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    title: str = ''
    snippet: str
    source_type: EvidenceSourceType = 'other'
    fetched_at: datetime = Field(default_factory=utcnow)
    hash: str
    categories: List[str] = Field(default_factory=list)


class SignalAnswer(BaseModel):
    """What the evaluator asks the model to return for one signal."""
    result: MatchResult
    confidence: float = Field(ge=0, le=1)
    evidence_urls: List[str] = Field(default_factory=list)
    evidence_snippets: List[str] = Field(default_factory=list)
    reasoning: str = ''


class SignalMatch(BaseModel):
    signal_id: str
    signal_name: str
    result: MatchResult = 'unknown'
    confidence: float = Field(default=0.0, ge=0, le=1)
    evidence_urls: List[str] = Field(default_factory=list)
    evidence_snippets: List[str] = Field(default_factory=list)
    reasoning: str = ''


class SignalMatchReport(BaseModel):
    domain: str
    company_name: str
    matches: List[SignalMatch] = Field(default_factory=list)
    overall_confidence: float = 0.0
    disqualified: bool = False
    disqualifier_reason: Optional[str] = None


# ── Leads ────────────────────────────────────────────────────────────────────

class TriggeredSignal(BaseModel):
    signal_id: str
    signal_name: str
    category: SignalCategory
    priority: Priority
    weight: float = 0
    confidence: float = 0


class Angle(BaseModel):
    title: str
    description: str
    evidence_url: str


class LeadRecord(BaseModel):
    id: str
    user_id: str
    date: str
    domain: str
    company_name: str
    industry: Optional[str] = None
    geo: Optional[str] = None
    score: float = Field(ge=0, le=100)
    why_now: str = ''
    triggered_signals: List[TriggeredSignal] = Field(default_factory=list)
    evidence_urls: List[str] = Field(default_factory=list)
    evidence_snippets: List[str] = Field(default_factory=list)
    linkedin_search_url: str = ''
    linkedin_search_query: str = ''
    target_titles: List[str] = Field(default_factory=list)
    opener_short: str = ''
    opener_medium: str = ''
    status: Literal['new', 'saved', 'contacted', 'skip'] = 'new'
    person_name: Optional[str] = None
    angles: List[Angle] = Field(default_factory=list)
    narrative: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
