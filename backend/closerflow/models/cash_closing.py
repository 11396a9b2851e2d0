from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from closerflow.models.organization import Base


class CashClosing(Base):
    __tablename__ = "cash_closings"

    id = Column(Integer, primary_key=True, index=True)
    store_id = Column(Integer, ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True)

    # Plain date, no time component: avoids the day shifting with the timezone
    date = Column(Date, nullable=False, index=True)
    initial_value = Column(Numeric(12, 2), nullable=False, default=0)
    expected_value = Column(Numeric(12, 2), nullable=False)
    counted_value = Column(Numeric(12, 2), nullable=False)
    difference = Column(Numeric(12, 2), nullable=False, default=0)  # counted - expected
    status = Column(String(20), nullable=False, default="pendente", server_default="pendente", index=True)
    observations = Column(Text, nullable=True)

    validated_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    validated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    store = relationship("Store")
    creator = relationship("User", foreign_keys=[user_id])
    validator = relationship("User", foreign_keys=[validated_by])

    @property
    def created_by(self):
        return self.user_id

    @property
    def created_by_name(self):
        return self.creator.name if self.creator else None

    @property
    def validated_by_name(self):
        return self.validator.name if self.validator else None

    @property
    def store_name(self):
        return self.store.name if self.store else None

    @property
    def store_code(self):
        return self.store.code if self.store else None
