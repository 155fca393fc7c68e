"""
microblog/models/post.py

Modelo ORM dos posts escritos pela conta local. Imutáveis depois de criados.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from microblog.database import Base


class Post(Base):
    __tablename__ = "posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    actor_id: Mapped[int] = mapped_column(ForeignKey("actors.id"))

    # HTML
    content: Mapped[str] = mapped_column(Text)

    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id!r} actor_id={self.actor_id!r}>"
