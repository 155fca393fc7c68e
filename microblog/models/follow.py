"""
microblog/models/follow.py

Modelo ORM da relação de follow: `follower_id` segue `following_id`.

`following_id` é sempre o actor local, o nó só aceita follows de si mesmo.
A aresta é única por par; um Follow reentregue não cria uma segunda linha.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from microblog.database import Base


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("following_id", "follower_id", name="uq_follows_edge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    following_id: Mapped[int] = mapped_column(ForeignKey("actors.id"))
    follower_id: Mapped[int] = mapped_column(ForeignKey("actors.id"))

    # Data em que o Follow foi aceito
    # insert_default é avaliado pelo SQLAlchemy no momento do INSERT,
    # garantindo o timezone correto independente da configuração do sistema
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<Follow following_id={self.following_id!r} "
            f"follower_id={self.follower_id!r}>"
        )
