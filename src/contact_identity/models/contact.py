"""Contact model - one observed (email, phone number) submission."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from contact_identity.models.base import Base
from contact_identity.models.enums import LinkPrecedence


def _utcnow() -> datetime:
    # Client-side timestamp keeps sub-second ordering on engines whose now() is coarse
    return datetime.now(UTC)


class Contact(Base):
    """A single contact row inside an identity graph.

    Graphs are flat stars: one PRIMARY row with ``linked_id = NULL`` and any
    number of SECONDARY rows whose ``linked_id`` points straight at it. Rows
    with ``deleted_at`` set are soft-deleted and invisible to resolution.
    """

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(String(320), index=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), index=True)
    linked_id: Mapped[int | None] = mapped_column(ForeignKey("contacts.id"), index=True)
    link_precedence: Mapped[LinkPrecedence] = mapped_column(
        Enum(
            LinkPrecedence,
            name="link_precedence",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        default=LinkPrecedence.PRIMARY,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (Index("ix_contacts_created_at_id", "created_at", "id"),)
    __mapper_args__ = {"eager_defaults": True}

    def __repr__(self) -> str:
        return (
            f"<Contact id={self.id} email={self.email!r} phone={self.phone_number!r} "
            f"precedence={self.link_precedence} linked_id={self.linked_id}>"
        )
