import pathlib

import psycopg

from tender_eval.config import load_settings

MIGRATIONS_DIR = pathlib.Path("migrations")


def validate_dsn(dsn: str | None) -> str:
    if not dsn:
        raise ValueError("DATABASE_URL is required")
    if not dsn.startswith(("postgresql://", "postgres://")):
        raise ValueError("DATABASE_URL must be a postgresql:// URL")
    return dsn


def migration_files(directory: pathlib.Path = MIGRATIONS_DIR) -> list[pathlib.Path]:
    files = sorted(directory.glob("*.sql"))
    if not files:
        raise FileNotFoundError(f"no migrations found in {directory}")
    return files


def main():
    settings = load_settings()
    dsn = validate_dsn(settings["DATABASE_URL"])
    # Every script is idempotent, so re-running the whole set is safe.
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cur:
            for path in migration_files():
                cur.execute(path.read_text(encoding="utf-8"))
        conn.commit()


if __name__ == "__main__":
    main()
