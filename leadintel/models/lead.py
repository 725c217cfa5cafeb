"""
Lead model — one row per prospect in ``all_leads``, unified across channels.

``unified_context`` is the per-channel JSON blob written by the channel
agents. It is read only through engine.facts, never path-by-path.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadintel.database import Base


class Lead(Base):
    __tablename__ = 'all_leads'

    id = Column(Text, primary_key=True)
    customer_name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)
    phone = Column(Text, nullable=True)
    unified_context = Column(JSON, nullable=True)
    lead_score = Column(Integer, nullable=True)
    lead_stage = Column(Text, nullable=True)
    sub_stage = Column(Text, nullable=True)
    first_touchpoint = Column(Text, nullable=True)   # web / whatsapp / voice / social
    last_touchpoint = Column(Text, nullable=True)
    last_interaction_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'customer_name': self.customer_name,
            'email': self.email,
            'phone': self.phone,
            'unified_context': self.unified_context or {},
            'lead_score': self.lead_score,
            'lead_stage': self.lead_stage,
            'sub_stage': self.sub_stage,
            'first_touchpoint': self.first_touchpoint,
            'last_touchpoint': self.last_touchpoint,
            'last_interaction_at': self.last_interaction_at,
            'created_at': self.created_at,
        }
