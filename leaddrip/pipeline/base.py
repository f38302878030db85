"""
Pipeline contracts shared by every stage.

RunContext carries one run's state through the stages: the config snapshot,
injected services, limits, the deadline, and the lock-guarded run counters.
run_bounded() is the one place work fans out to a thread pool.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from leaddrip.errors import LeadDripError
from leaddrip.models.run import SignalRun
from leaddrip.pipeline.pipeline_config import get_retry_policy, get_section
from leaddrip.schemas import EvidenceChunk, LeadRecord, SearchResult, SignalDefinition, UserConfig
from leaddrip.services.retry import RetryPolicy

logger = logging.getLogger('pipeline.base')


@dataclass(frozen=True)
class PipelineLimits:
    search_concurrency: int = 5
    candidate_concurrency: int = 5
    max_queries: int = 50
    max_leads_per_run: int = 50

    @classmethod
    def from_config(cls) -> 'PipelineLimits':
        cfg = get_section('limits')
        return cls(**{k: int(v) for k, v in cfg.items() if k in cls.__dataclass_fields__})


@dataclass(frozen=True)
class GateSettings:
    min_confidence: float = 0.45
    disqualifier_confidence: float = 0.5
    signal_confidence_floor: float = 0.5

    @classmethod
    def from_config(cls) -> 'GateSettings':
        cfg = get_section('gate')
        return cls(**{k: float(v) for k, v in cfg.items() if k in cls.__dataclass_fields__})


@dataclass
class RunOptions:
    mode: str = 'hunt'
    limit: Optional[int] = None
    list_id: Optional[str] = None
    domains: Optional[List[str]] = None
    budget_seconds: Optional[float] = None


@dataclass
class PipelineServices:
    """External collaborators, built once per process and injected into every run."""
    generation: Any
    search: Any = None
    fetcher: Any = None
    run_mode: str = 'live'


@dataclass
class PipelineResult:
    run_id: str
    leads: List[LeadRecord]
    stats: Dict[str, int]
    errors: List[Dict]
    run: SignalRun
    usage: Dict[str, Dict[str, int]] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.run.status


class RunContext:

    def __init__(
        self,
        run: SignalRun,
        config: UserConfig,
        services: PipelineServices,
        limits: PipelineLimits = None,
        gate: GateSettings = None,
        retry_policy: RetryPolicy = None,
        budget_seconds: float = None,
        launch_cutoff_seconds: float = None,
        grace_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        run_cfg = get_section('run')
        self.run = run
        self.config = config
        self.services = services
        self.limits = limits or PipelineLimits.from_config()
        self.gate = gate or GateSettings.from_config()
        self.retry_policy = retry_policy or get_retry_policy()
        self.clock = clock
        budget = budget_seconds if budget_seconds is not None else float(run_cfg.get('budget_seconds', 280))
        cutoff = launch_cutoff_seconds if launch_cutoff_seconds is not None else float(run_cfg.get('launch_cutoff_seconds', 20))
        self.deadline = clock() + budget
        self.launch_cutoff = min(cutoff, budget)
        self.grace = grace_seconds if grace_seconds is not None else float(run_cfg.get('grace_seconds', 5))
        self.closed = False
        self.search_results: List[SearchResult] = []
        self._seen_hashes = set()
        self._lock = threading.Lock()

    @property
    def enabled_signals(self) -> List[SignalDefinition]:
        return self.config.enabled_signals

    # ── Deadline ──────────────────────────────────────────────────────

    def remaining(self) -> float:
        return max(0.0, self.deadline - self.clock())

    def should_stop_launching(self) -> bool:
        return self.clock() >= self.deadline - self.launch_cutoff

    def close(self):
        """Stop counting work. Units still running after this only finish for nothing."""
        self.closed = True

    # ── Shared state ──────────────────────────────────────────────────

    def increment(self, stat: str, count: int = 1):
        if not self.closed:
            self.run.increment(stat, count)

    def set_stat(self, stat: str, value: int):
        if not self.closed:
            self.run.set_stat(stat, value)

    def record_error(self, stage: str, error: BaseException, unit: str = ''):
        kind = type(error).__name__
        logger.warning("%s failure in %s [%s]: %s", kind, stage, unit or '-', error,
                       extra={'run_id': self.run.id})
        self.add_error(stage, kind, str(error), unit=unit)

    def add_error(self, stage: str, kind: str, message: str, unit: str = ''):
        if not self.closed:
            self.run.add_error(stage, kind, message, unit=unit)

    def register_chunks(self, chunks: Iterable[EvidenceChunk]) -> int:
        """Count chunks not seen earlier in this run toward evidence_chunks_fetched."""
        with self._lock:
            new = [c for c in chunks if c.hash not in self._seen_hashes]
            self._seen_hashes.update(c.hash for c in new)
        if new:
            self.increment('evidence_chunks_fetched', len(new))
        return len(new)


_NOT_STARTED = object()


def run_bounded(
    ctx: RunContext,
    items: List[Any],
    func: Callable[[Any], Any],
    max_workers: int,
    stage: str,
    unit_name: Callable[[Any], str] = str,
) -> List[Tuple[Any, Any]]:
    """
    Run func over items with at most max_workers in flight.

    Returns (item, result) pairs, in item order, for units that finished.
    Units not started before the launch cutoff, units still running once the
    deadline plus grace period has passed, and units that raised a non-fatal
    error are recorded on the run and left out. Run-fatal errors propagate.
    """
    if not items:
        return []

    def guarded(item):
        if ctx.closed or ctx.should_stop_launching():
            return _NOT_STARTED
        return func(item)

    executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix=f'leaddrip-{stage}')
    try:
        futures = {executor.submit(guarded, item): idx for idx, item in enumerate(items)}
        done, not_done = wait(futures, timeout=ctx.remaining() + ctx.grace)

        for future in not_done:
            future.cancel()
            ctx.add_error(stage, 'Timeout', 'Did not finish before the run deadline',
                          unit=unit_name(items[futures[future]]))
        if not_done:
            logger.warning("Stage '%s': %d units still running at deadline", stage, len(not_done))

        results, not_started = [], 0
        for future in sorted(done, key=futures.get):
            item = items[futures[future]]
            try:
                result = future.result()
            except LeadDripError as e:
                if e.fatal:
                    raise
                ctx.record_error(stage, e, unit=unit_name(item))
                continue
            except Exception as e:
                logger.exception("Unexpected error in stage '%s' for %s", stage, unit_name(item))
                ctx.record_error(stage, e, unit=unit_name(item))
                continue
            if result is _NOT_STARTED:
                not_started += 1
                continue
            results.append((item, result))

        if not_started:
            logger.warning("Stage '%s': launch cutoff reached, %d units not started", stage, not_started)
            ctx.add_error(stage, 'BudgetExhausted',
                          f'{not_started} units not started before the run deadline')
        return results
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
