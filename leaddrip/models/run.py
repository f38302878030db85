"""
SignalRun — in-memory state of one pipeline execution.

A run moves pending → running → completed | failed. Stats and the error log
are mutated from worker threads, so every write goes through the run's lock.
"""
import logging
import threading
import uuid
from dataclasses import dataclass, asdict, fields
from datetime import datetime, timezone
from typing import Dict, List, Optional

from leaddrip.config import RUN_TRANSITIONS
from leaddrip.errors import InvalidRunTransition

logger = logging.getLogger('pipeline.run')


@dataclass
class SignalRunStats:
    queries_executed: int = 0
    candidates_found: int = 0
    candidates_after_dedup: int = 0
    evidence_chunks_fetched: int = 0
    signal_evaluations: int = 0
    leads_generated: int = 0
    leads_passed_gate: int = 0
    insufficient_evidence: int = 0
    disqualified: int = 0
    duplicates_skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


STAT_FIELDS = tuple(f.name for f in fields(SignalRunStats))


class SignalRun:
    """One hunt or watch execution for a single user."""

    def __init__(
        self,
        user_id: str,
        mode: str = 'hunt',
        list_id: str = None,
        id: str = None,
    ):
        if mode not in ('hunt', 'watch'):
            raise ValueError(f"Unknown run mode: {mode}")
        self.id = id or str(uuid.uuid4())
        self.user_id = user_id
        self.mode = mode
        self.list_id = list_id
        self.status = 'pending'
        self.started_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.stats = SignalRunStats()
        self.errors: List[Dict] = []
        self.error: Optional[str] = None
        self.summary = ''
        self.usage: Dict = {}
        self._lock = threading.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────

    def _transition(self, new_status: str):
        allowed = RUN_TRANSITIONS.get(self.status, ())
        if new_status not in allowed:
            raise InvalidRunTransition(f"Run {self.id}: cannot go from {self.status} to {new_status}")
        self.status = new_status

    def start(self):
        self._transition('running')

    def complete(self):
        self._transition('completed')
        self.finished_at = datetime.now(timezone.utc)

    def fail(self, reason: str = ''):
        self._transition('failed')
        self.finished_at = datetime.now(timezone.utc)
        self.error = reason or 'unknown error'

    @property
    def is_finished(self) -> bool:
        return self.status in ('completed', 'failed')

    # ── Counters & errors ─────────────────────────────────────────────
    # A finished run is sealed: late writes from abandoned workers are dropped.

    def increment(self, stat: str, count: int = 1):
        if stat not in STAT_FIELDS:
            raise KeyError(stat)
        with self._lock:
            if self.is_finished:
                logger.debug("Run %s finished, dropping late %s += %d", self.id, stat, count)
                return
            setattr(self.stats, stat, getattr(self.stats, stat) + count)

    def set_stat(self, stat: str, value: int):
        if stat not in STAT_FIELDS:
            raise KeyError(stat)
        with self._lock:
            if self.is_finished:
                logger.debug("Run %s finished, dropping late %s = %d", self.id, stat, value)
                return
            setattr(self.stats, stat, value)

    def add_error(self, stage: str, kind: str, message: str, unit: str = ''):
        """Record a non-fatal failure of one unit of work."""
        with self._lock:
            if self.is_finished:
                logger.debug("Run %s finished, dropping late %s error for %s", self.id, kind, unit or '-')
                return
            self.errors.append({
                'stage': stage,
                'kind': kind,
                'unit': unit,
                'message': message,
                'timestamp': datetime.now(timezone.utc).isoformat(),
            })

    def to_dict(self) -> Dict:
        with self._lock:
            return {
                'id': self.id,
                'user_id': self.user_id,
                'mode': self.mode,
                'list_id': self.list_id,
                'status': self.status,
                'started_at': self.started_at.isoformat(),
                'finished_at': self.finished_at.isoformat() if self.finished_at else None,
                'stats': self.stats.to_dict(),
                'errors': list(self.errors),
                'error': self.error,
                'summary': self.summary,
                'usage': dict(self.usage),
            }
