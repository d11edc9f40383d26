"""Versioned JSON blob storage model."""

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from napcoach.models.base import Base, ProfileScopedMixin, TimestampMixin, generate_uuid


class StoredBlob(Base, ProfileScopedMixin, TimestampMixin):
    """One JSON document per (profile, key).

    The engine state (session log, learner state, notification history,
    profile) is persisted whole on every write, so a key-value layout is
    enough. ``schema_version`` tags the payload shape for forward migration.
    """

    __tablename__ = "stored_blobs"
    __table_args__ = (
        UniqueConstraint("profile_id", "key", name="uq_stored_blob_key"),
        {"comment": "Versioned JSON documents keyed per profile"},
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
    )
    key: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Blob key (sleep_sessions, learner_state, ...)",
    )
    schema_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Payload schema version",
    )
    payload: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="JSON document",
    )

    def __repr__(self) -> str:
        return f"<StoredBlob(profile_id={self.profile_id}, key={self.key})>"
