"""
SQLAlchemy ORM models for database tables
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EligibleUserModel(Base):
    """SQLAlchemy ORM model for eligible_users table"""

    __tablename__ = "eligible_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(42), nullable=False, unique=True)
    # Base units (wei) as a decimal string, never a float
    allocated_amount = Column(String(78), nullable=False)
    xp_points = Column(Integer, default=0, nullable=False)
    rank = Column(Integer, nullable=False)
    claimed = Column(Boolean, default=False, nullable=False)
    claim_date = Column(DateTime(timezone=True), nullable=True)
    tx_hash = Column(String(66), nullable=True)
    signature = Column(Text, nullable=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_attempt = Column(DateTime(timezone=True), nullable=True)
    ip_address = Column(String(64), nullable=True)
    country = Column(String(128), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_eligible_users_claimed', 'claimed'),
        Index('idx_eligible_users_wallet_claimed', 'wallet_address', 'claimed'),
        Index('idx_eligible_users_claim_date', 'claim_date'),
        Index('idx_eligible_users_rank', 'rank'),
    )

    def __repr__(self):
        return f"<EligibleUser(wallet_address='{self.wallet_address}', rank={self.rank}, claimed={self.claimed})>"


class TransactionStatus:
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TransactionModel(Base):
    """SQLAlchemy ORM model for transactions table"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    wallet_address = Column(String(42), nullable=False)
    tx_hash = Column(String(66), nullable=False, unique=True)
    amount = Column(String(78), nullable=False)
    status = Column(String(20), default=TransactionStatus.PENDING, nullable=False)
    gas_used = Column(String(78), default="0", nullable=False)
    gas_paid = Column(String(78), default="0", nullable=False)
    block_number = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index('idx_transactions_wallet', 'wallet_address'),
        Index('idx_transactions_status', 'status'),
        Index('idx_transactions_wallet_status', 'wallet_address', 'status'),
        Index('idx_transactions_created', 'created_at'),
    )

    def __repr__(self):
        return f"<Transaction(tx_hash='{self.tx_hash}', wallet='{self.wallet_address}', status='{self.status}')>"
