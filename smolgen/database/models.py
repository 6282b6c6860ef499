"""
Smolgen Database Models
SQLAlchemy ORM models for persisted generation artifacts
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Text,
    TIMESTAMP,
    Index,
    UniqueConstraint
)
from sqlalchemy.sql import func
from sqlalchemy.orm import Mapped, mapped_column

from .connection import Base


class Smol(Base):
    """One completed generation: title, two song slots and ownership"""
    __tablename__ = "smols"

    # Primary key is the workflow run id
    id: Mapped[str] = mapped_column(Text, primary_key=True)

    title: Mapped[str] = mapped_column(Text, nullable=False)
    song_1: Mapped[str] = mapped_column(Text, nullable=False)
    song_2: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        server_default=func.now()
    )

    public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    instrumental: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    plays: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    address: Mapped[str] = mapped_column(Text, nullable=False)

    # Minting state is written by the minting workflow
    mint_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mint_amm: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_smols_address", "address"),
    )

    def __repr__(self) -> str:
        return f"<Smol(id={self.id}, title='{self.title}', address={self.address})>"


Index("idx_smols_public_created", Smol.public, Smol.created_at.desc())


class Playlist(Base):
    """Membership of a smol in a named playlist"""
    __tablename__ = "playlists"

    row_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("id", "title", name="uq_playlists_id_title"),
    )

    def __repr__(self) -> str:
        return f"<Playlist(id={self.id}, title='{self.title}')>"
