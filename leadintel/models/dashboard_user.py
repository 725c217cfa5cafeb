"""
DashboardUser model — team members, looked up for summary attribution.
"""
from sqlalchemy import Column, Text

from leadintel.database import Base


class DashboardUser(Base):
    __tablename__ = 'dashboard_users'

    id = Column(Text, primary_key=True)
    name = Column(Text, nullable=True)
    email = Column(Text, nullable=True)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'email': self.email}
