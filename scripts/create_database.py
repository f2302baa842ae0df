"""Create the PostgreSQL database and the video tables if they don't exist."""

import sys
import os
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncpg
import asyncio
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

DATABASE_HOST = os.getenv("DATABASE_HOST", "localhost")
DATABASE_PORT = int(os.getenv("DATABASE_PORT", "5432"))
DATABASE_USER = os.getenv("DATABASE_USER", "postgres")
DATABASE_PASSWORD = os.getenv("DATABASE_PASSWORD", "")
DATABASE_NAME = os.getenv("DATABASE_NAME", "tubely")


async def create_database():
    """Create the database if it doesn't exist, then its tables."""
    print("=" * 50)
    print("Creating PostgreSQL Database")
    print("=" * 50)
    print()
    print(f"  Host: {DATABASE_HOST}:{DATABASE_PORT}")
    print(f"  Database: {DATABASE_NAME}")
    print(f"  User: {DATABASE_USER}")
    print()

    try:
        conn = await asyncpg.connect(
            host=DATABASE_HOST,
            port=DATABASE_PORT,
            user=DATABASE_USER,
            password=DATABASE_PASSWORD,
            database="postgres",
        )

        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1", DATABASE_NAME
        )

        if exists:
            print(f"✓ Database '{DATABASE_NAME}' already exists.")
        else:
            print(f"Creating database '{DATABASE_NAME}'...")
            await conn.execute(f'CREATE DATABASE "{DATABASE_NAME}"')
            print(f"✓ Database '{DATABASE_NAME}' created.")

        await conn.close()
    except asyncpg.exceptions.InvalidPasswordError:
        print("✗ Error: Invalid database password")
        print("  Please check your DATABASE_PASSWORD in .env file")
        return 1
    except OSError as e:
        print(f"✗ Error: Could not connect to PostgreSQL: {e}")
        return 1

    # Settings read DATABASE_URL, so import after .env is loaded
    from tubely.core.database import close_db, create_db_and_tables

    print("Creating tables...")
    await create_db_and_tables()
    await close_db()
    print("✓ Tables ready.")
    print()
    print("Next steps:")
    print("  1. Issue a dev token: python scripts/create_token.py")
    print("  2. Start the server: uvicorn tubely.main:app --port 8091 --reload")
    print()
    return 0


if __name__ == "__main__":
    exit_code = asyncio.run(create_database())
    sys.exit(exit_code)
