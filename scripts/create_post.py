"""
Cria um post da conta local e imprime a URI do objeto.
Uso: uv run python scripts/create_post.py <username> "<p>Olá, fediverso!</p>"
"""

import asyncio
import sys

from microblog.database import async_session_factory, init_db
from microblog.services.posts import create_post


async def main(username: str, content: str) -> int:
    await init_db()
    async with async_session_factory() as session:
        async with session.begin():
            created = await create_post(session, username, content)

    if created is None:
        print(f"✗ Conta {username!r} não encontrada.")
        return 1

    print(f"✓ Post criado: {created[1]}")
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print(__doc__.strip())
        sys.exit(2)
    sys.exit(asyncio.run(main(sys.argv[1], sys.argv[2])))
