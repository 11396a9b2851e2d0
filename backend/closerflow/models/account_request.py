from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from closerflow.models.organization import Base


class AccountRequest(Base):
    """Access request left on the login page by someone without an account."""

    __tablename__ = "account_requests"
    __table_args__ = (UniqueConstraint("email", name="uq_account_requests_email"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending")  # pending | approved | rejected
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
