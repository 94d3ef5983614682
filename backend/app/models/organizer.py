"""
Organizers, their members and promoters.
"""

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint

from app.db.base import Base, TimestampMixin, new_uuid


class Organizer(Base, TimestampMixin):
    __tablename__ = "organizers"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    created_by = Column(String(36), nullable=True, index=True)


class OrganizerUser(Base, TimestampMixin):
    __tablename__ = "organizer_users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    organizer_id = Column(String(36), ForeignKey("organizers.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("organizer_id", "user_id", name="uq_organizer_user"),
    )


class Promoter(Base, TimestampMixin):
    __tablename__ = "promoters"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(255), nullable=False)
    # The promoter's own user account
    created_by = Column(String(36), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<Promoter(id={self.id}, name={self.name})>"
