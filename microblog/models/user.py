"""
microblog/models/user.py

Modelo ORM da conta local.

O nó hospeda uma única conta, criada uma vez pelo fluxo de setup e nunca
alterada depois disso.
"""

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from microblog.database import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Segmento usado em /users/{username}; segue o padrão [a-z0-9_-]{1,50}
    username: Mapped[str] = mapped_column(String(50), unique=True)

    def __repr__(self) -> str:
        return f"<User username={self.username!r}>"
