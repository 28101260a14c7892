# giftlist/models/claim.py
# -----------------------------------------------------------------------------
# МОДЕЛЬ: Claim: бронь подарка (полная или частичная)
# -----------------------------------------------------------------------------
#  • amount IS NULL : полная бронь, исключает любые другие брони на позицию;
#  • amount > 0     : частичная бронь (центы), сумма частичных <= items.price.
# Единственность полной брони гарантируется частичным уникальным индексом
# (uq_claims_item_full), а не только проверкой в приложении.

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class Claim(Base):
    __tablename__ = "claims"

    id = Column(String(32), primary_key=True, default=new_id)
    item_id = Column(String(32), ForeignKey("items.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    amount = Column(Integer, nullable=True, comment="NULL = полная бронь; иначе центы")
    expires_at = Column(DateTime, nullable=True, index=True)
    purchased_at = Column(DateTime, nullable=True)
    reminded_at = Column(DateTime, nullable=True, comment="Когда отправили напоминание об истечении")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount IS NULL OR amount > 0", name="ck_claims_amount_positive"),
        Index(
            "uq_claims_item_full",
            "item_id",
            unique=True,
            postgresql_where=amount.is_(None),
            sqlite_where=amount.is_(None),
        ),
    )

    item = relationship("Item")
    user = relationship("User")

    @property
    def is_full(self) -> bool:
        return self.amount is None

    def __repr__(self):
        return f"<Claim(id={self.id}, item_id={self.item_id}, user_id={self.user_id}, amount={self.amount})>"
