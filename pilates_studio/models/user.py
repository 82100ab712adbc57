# pilates_studio/models/user.py
"""
User model.

Members and admins share one table; ``role`` decides which operations an
actor may perform. Only the fields the booking core reads are modelled.
"""

from datetime import datetime
import logging

from sqlalchemy import CheckConstraint, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core import timezone_utils
from ..core.enums import RoleName
from ..database import Base

logger = logging.getLogger(__name__)


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=True)
    role = Column(String(20), nullable=False, default=RoleName.MEMBER.value)
    consent_agreed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: timezone_utils.utc_now(),
        server_default=func.now(),
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    tickets = relationship("Ticket", back_populates="user", cascade="all, delete-orphan")
    reservations = relationship("Reservation", back_populates="user")
    waiting_list_entries = relationship(
        "WaitingListEntry", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("role IN ('member', 'admin')", name="ck_users_role"),
    )

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email} role={self.role}>"

    @property
    def is_admin(self) -> bool:
        return self.role == RoleName.ADMIN.value

    @property
    def has_consented(self) -> bool:
        return self.consent_agreed_at is not None

    def record_consent(self, when: datetime) -> None:
        """Stamp the first consent acceptance; later acceptances keep the original time."""
        if self.consent_agreed_at is None:
            self.consent_agreed_at = when
            logger.info(f"User {self.id} agreed to the consent form")
