"""Issue a bearer token for local development.

Run: python scripts/create_token.py [USER_ID] [--minutes N]
"""

import argparse
import sys
import uuid
from datetime import timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from tubely.modules.auth.jwt import create_access_token  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Issue a Tubely access token")
    parser.add_argument("user_id", nargs="?", help="User UUID (random when omitted)")
    parser.add_argument("--minutes", type=int, default=60, help="Token lifetime in minutes")
    args = parser.parse_args()

    try:
        user_id = uuid.UUID(args.user_id) if args.user_id else uuid.uuid4()
    except ValueError:
        print(f"✗ Error: '{args.user_id}' is not a UUID")
        return 1

    token = create_access_token(user_id, expires_delta=timedelta(minutes=args.minutes))
    print(f"User ID: {user_id}")
    print(f"Authorization: Bearer {token}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
