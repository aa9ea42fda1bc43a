import argparse, asyncio, os
from pathlib import Path

import asyncpg

from storefront.settings import get_settings

SCHEMA = Path(__file__).resolve().parent.parent / "storefront" / "db" / "schema.sql"


async def apply_schema(dsn: str, schema_path: Path):
    sql = schema_path.read_text(encoding="utf-8")
    conn = await asyncpg.connect(dsn=dsn)
    try:
        # one transaction so a broken file leaves the database as it was
        async with conn.transaction():
            await conn.execute(sql)
    finally:
        await conn.close()
    print(f"Applied {schema_path.name} -> {dsn.rsplit('@', 1)[-1]}")


if __name__ == "__main__":
    ap = argparse.ArgumentParser(description="Create the storefront tables (idempotent).")
    ap.add_argument('--dsn', default=os.environ.get("DATABASE_URL") or get_settings().database_url,
                    help='Postgres DSN (defaults to DATABASE_URL)')
    ap.add_argument('--schema', default=str(SCHEMA), help='DDL file to apply')
    args = ap.parse_args()
    if not args.dsn:
        ap.error("no DSN given and DATABASE_URL is not set")
    asyncio.run(apply_schema(args.dsn, Path(args.schema)))
