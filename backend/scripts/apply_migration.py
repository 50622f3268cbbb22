import asyncio
import os
import sys
from pathlib import Path

# Ensure backend path is in sys.path
BACKEND_ROOT = Path(__file__).resolve().parent.parent
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from gigmatch.infra.postgres import close_pool, get_pool  # noqa: E402

MIGRATIONS_DIR = BACKEND_ROOT / "migrations"


def _resolve(names: list[str]) -> list[Path]:
    if names:
        return [MIGRATIONS_DIR / name for name in names]
    return sorted(MIGRATIONS_DIR.glob("*.sql"))


async def apply_migrations(names: list[str]) -> int:
    paths = _resolve(names)
    missing = [path for path in paths if not path.exists()]
    if missing:
        for path in missing:
            print(f"Migration file not found: {path}")
        return 1

    pool = await get_pool()
    try:
        for path in paths:
            print(f"Applying migration: {path.name}")
            sql = path.read_text(encoding="utf-8")
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(sql)
    finally:
        await close_pool()
    print("Migrations applied successfully.")
    return 0


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    os.chdir(BACKEND_ROOT)
    sys.exit(asyncio.run(apply_migrations(sys.argv[1:])))
