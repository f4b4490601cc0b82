"""
SQLAlchemy model for the credential store: one key-value row per entry, with optional expiry.
"""
from sqlalchemy import Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StoreEntry(Base):
    __tablename__ = "store_entries"

    # Key families: discord-<id>, scoutid-<sub>, state-<token>, discord-link-<id>
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    # Epoch seconds; None = no expiry
    expires_at: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
