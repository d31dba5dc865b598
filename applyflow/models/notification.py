"""User-facing match notifications and application reviews"""

from sqlalchemy import Column, String, Text, Float, ForeignKey, Enum as SQLEnum
from applyflow.core.database import Base
from applyflow.models.base import TimestampMixin, UTCDateTime, new_id
import enum


class NotificationStatus(str, enum.Enum):
    """Notification status enumeration"""
    PENDING = "PENDING"
    VIEWED = "VIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class ReviewStatus(str, enum.Enum):
    """Application review status enumeration"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class JobNotification(Base, TimestampMixin):
    """Tells a user about a listing that scored above their threshold"""

    __tablename__ = "job_notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    job_listing_id = Column(String(36), ForeignKey("job_listings.id", ondelete="CASCADE"), nullable=False)
    match_score = Column(Float, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(
        SQLEnum(NotificationStatus, name="notificationstatus", native_enum=False, length=16),
        nullable=False,
        default=NotificationStatus.PENDING,
        index=True,
    )
    expires_at = Column(UTCDateTime, nullable=True)

    def __repr__(self):
        return f"<JobNotification(id={self.id}, user_id={self.user_id}, status={self.status})>"


class ApplicationReview(Base, TimestampMixin):
    """Pending approval for an application the user must confirm"""

    __tablename__ = "application_reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    notification_id = Column(String(36), ForeignKey("job_notifications.id", ondelete="CASCADE"), nullable=False)
    job_listing_id = Column(String(36), ForeignKey("job_listings.id", ondelete="CASCADE"), nullable=False)
    status = Column(
        SQLEnum(ReviewStatus, name="reviewstatus", native_enum=False, length=16),
        nullable=False,
        default=ReviewStatus.PENDING,
        index=True,
    )
    expires_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<ApplicationReview(id={self.id}, status={self.status})>"
