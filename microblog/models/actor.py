"""
microblog/models/actor.py

Modelo ORM para actors: a identidade pública da conta local e o cache dos
actors remotos que interagiram com o nó.

`user_id` nulo indica um actor remoto. Actors remotos são atualizados a cada
interação (upsert por `uri`) e nunca são removidos.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from microblog.database import Base


class Actor(Base):
    __tablename__ = "actors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )

    # URL canônica do actor, identificador único no Fediverso
    # ex: "https://mastodon.social/users/fulano"
    uri: Mapped[str] = mapped_column(String(2048), unique=True)

    # Forma @nome@host
    handle: Mapped[str] = mapped_column(String(512))

    name: Mapped[str | None] = mapped_column(String(512), nullable=True)

    inbox_url: Mapped[str] = mapped_column(String(2048))

    shared_inbox_url: Mapped[str | None] = mapped_column(
        String(2048), nullable=True
    )

    # Página de perfil para humanos
    url: Mapped[str | None] = mapped_column(String(2048), nullable=True)

    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Actor uri={self.uri!r}>"
