"""
ChannelSession model — one engagement session on one channel.
"""
from sqlalchemy import Column, Integer, Text, DateTime
from sqlalchemy.sql import func

from leadintel.database import Base


class ChannelSession(Base):
    __tablename__ = 'sessions'

    id = Column(Text, primary_key=True)
    lead_id = Column(Text, nullable=True, index=True)   # weak reference, no FK
    channel = Column(Text, nullable=False)
    message_count = Column(Integer, default=0)
    booking_date = Column(Text, nullable=True)           # "YYYY-MM-DD" as written by the agents
    booking_time = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'lead_id': self.lead_id,
            'channel': self.channel,
            'message_count': self.message_count,
            'booking_date': self.booking_date,
            'booking_time': self.booking_time,
            'created_at': self.created_at,
        }
