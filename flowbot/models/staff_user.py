import uuid

from sqlalchemy import Boolean, Column, Text, Uuid

from flowbot.database import Base


class StaffUser(Base):
    __tablename__ = "staff_users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    email = Column(Text)
    role = Column(Text, nullable=False)  # admin, finance, user
    is_active = Column(Boolean, nullable=False, default=True)
