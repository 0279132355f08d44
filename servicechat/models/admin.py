import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from servicechat.core.database import Base

class Admin(Base):
    __tablename__ = "admins"

    id = Column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex[:24])
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    role = Column(String, default="admin")  # admin, super_admin
    created_at = Column(DateTime, default=datetime.utcnow)
