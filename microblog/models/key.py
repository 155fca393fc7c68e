"""
microblog/models/key.py

Modelo ORM para os pares de chaves da conta local.

Cada conta possui no máximo um par por algoritmo (chave primária composta
`user_id` + `type`). O material é guardado como JSON Web Key serializado.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from microblog.database import Base


class Key(Base):
    __tablename__ = "keys"

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)

    # "RSASSA-PKCS1-v1_5" ou "Ed25519"
    type: Mapped[str] = mapped_column(String(32), primary_key=True)

    private_key: Mapped[str] = mapped_column(Text)
    public_key: Mapped[str] = mapped_column(Text)

    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Key user_id={self.user_id!r} type={self.type!r}>"
