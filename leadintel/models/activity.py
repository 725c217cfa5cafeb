"""
Activity model — notes and calls logged by the team against a lead.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from leadintel.database import Base


class Activity(Base):
    __tablename__ = 'activities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=False, index=True)
    activity_type = Column(Text, nullable=False)         # call / meeting / note / ...
    note = Column(Text, default='')
    created_by = Column(Text, nullable=True)             # dashboard user id
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'lead_id': self.lead_id,
            'activity_type': self.activity_type,
            'note': self.note or '',
            'created_by': self.created_by,
            'created_at': self.created_at,
        }
