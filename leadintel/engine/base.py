"""
Engine value objects.

Every engine component reads a lead through CanonicalContext, which
engine.facts builds once from the raw row. ScoreBreakdown is the uniform
scoring output consumed by the metrics aggregator and the HTTP surface.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Any, Optional


@dataclass(frozen=True)
class CanonicalBooking:
    """Reconciled booking fact. Fields resolve independently."""
    date: Optional[str] = None
    time: Optional[str] = None

    @property
    def exists(self) -> bool:
        return bool(self.date or self.time)

    def to_dict(self) -> Dict[str, Any]:
        return {'date': self.date, 'time': self.time, 'has_booking': self.exists}


@dataclass(frozen=True)
class KeyInfo:
    """Facts extracted by the channel agents."""
    budget: Optional[str] = None
    service_interest: Optional[str] = None
    pain_points: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.budget or self.service_interest or self.pain_points)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CanonicalContext:
    """Single typed view over a lead's unified context and columns."""
    lead_id: Optional[str]
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    stage: Optional[str] = None
    sub_stage: Optional[str] = None
    booking: CanonicalBooking = field(default_factory=CanonicalBooking)
    unified_summary: Optional[str] = None
    channel_summaries: Dict[str, str] = field(default_factory=dict)  # channel order kept
    key_info: KeyInfo = field(default_factory=KeyInfo)
    next_touchpoint: Optional[str] = None
    last_interaction_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone)


@dataclass
class ScoreBreakdown:
    """Weighted lead score: ai (max 60) + activity (max 30) + business (max 10)."""
    ai: int = 0
    activity: int = 0
    business: int = 0
    total: int = 0
    health: str = 'Cold'
    signals: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ai': self.ai,
            'activity': self.activity,
            'business': self.business,
            'total': self.total,
            'health': self.health,
            'signals': dict(self.signals),
        }
