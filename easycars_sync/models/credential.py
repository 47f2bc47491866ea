"""EasyCars credential model - one encrypted credential set per dealership."""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from sqlalchemy.sql import func

from easycars_sync.database import Base


class EasyCarsCredential(Base):
    """Connection secrets for a dealership's EasyCars account.

    Every secret column holds a Fernet token (see services.encryption);
    plaintext never leaves the sync engine.
    """

    __tablename__ = "easycars_credentials"

    id = Column(Integer, primary_key=True, index=True)
    dealership_id = Column(Integer, nullable=False, unique=True, index=True)

    # Encrypted secrets
    account_number_encrypted = Column(Text, nullable=False)
    account_secret_encrypted = Column(Text, nullable=False)
    client_id_encrypted = Column(Text, nullable=True)
    client_secret_encrypted = Column(Text, nullable=True)

    environment = Column(String(20), nullable=False, default="Test")  # Test | Production
    yard_code = Column(String(50), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    auto_sync_enabled = Column(Boolean, nullable=False, default=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), nullable=True)

    def __repr__(self):
        return f"<EasyCarsCredential(dealership_id={self.dealership_id}, environment='{self.environment}')>"
