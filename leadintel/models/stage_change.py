"""
StageChange model — append-only audit log of pipeline stage transitions.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from leadintel.database import Base


class StageChange(Base):
    __tablename__ = 'stage_history'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=False, index=True)
    old_stage = Column(Text, nullable=True)
    new_stage = Column(Text, nullable=False)
    score_at_change = Column(Integer, nullable=True)
    changed_by = Column(Text, nullable=True)             # dashboard user id, "system" or "PROXe AI"
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'lead_id': self.lead_id,
            'old_stage': self.old_stage,
            'new_stage': self.new_stage,
            'score_at_change': self.score_at_change,
            'changed_by': self.changed_by,
            'changed_at': self.changed_at,
        }
