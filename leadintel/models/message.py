"""
Message model — one conversation turn, append-only.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON
from sqlalchemy.sql import func

from leadintel.database import Base


class Message(Base):
    __tablename__ = 'conversations'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, nullable=True, index=True)
    channel = Column(Text, nullable=True)
    sender = Column(Text, nullable=False)                # customer / agent / system
    content = Column(Text, default='')
    # `metadata` is reserved on declarative classes
    metadata_ = Column('metadata', JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'lead_id': self.lead_id,
            'channel': self.channel,
            'sender': self.sender,
            'content': self.content or '',
            'metadata': self.metadata_ or {},
            'created_at': self.created_at,
        }
