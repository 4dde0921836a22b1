"""Two-factor authentication state model."""

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship

from leadflow.core.database import Base
from leadflow.core.db_types import JSONList, UUID
from leadflow.services.encryption_service import EncryptedString
from leadflow.utils.datetime_utils import utc_now


class UserTwoFactor(Base):
    """
    Per-user TOTP state.

    A missing row means 2FA is off. ``pending_*`` columns hold an enrollment
    that has not been confirmed yet; the committed columns are only populated
    once ``is_enabled`` is true. Backup codes are stored as argon2 hashes.
    """

    __tablename__ = "user_two_factor"

    id = Column(UUID, primary_key=True, default=uuid4)
    user_id = Column(
        UUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Committed state
    is_enabled = Column(Boolean, default=False, nullable=False)
    secret = Column(EncryptedString, nullable=True)
    backup_codes = Column(JSONList, nullable=True)
    enabled_at = Column(DateTime, nullable=True)
    backup_codes_regenerated_at = Column(DateTime, nullable=True)
    last_used_at = Column(DateTime, nullable=True)

    # In-progress enrollment
    pending_secret = Column(EncryptedString, nullable=True)
    pending_backup_codes = Column(JSONList, nullable=True)
    setup_initiated_at = Column(DateTime, nullable=True)

    # Bumped on every write; updates are compare-and-swap against it
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Relationships
    user = relationship("User", back_populates="two_factor")

    def __repr__(self):
        return f"<UserTwoFactor user={self.user_id} enabled={self.is_enabled}>"
