import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.security import ROLES, create_access_token  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Issue a development bearer token")
    parser.add_argument("user_id")
    parser.add_argument("--role", choices=ROLES, default="cashier")
    parser.add_argument("--minutes", type=int, default=None, help="token lifetime")
    args = parser.parse_args()
    print(create_access_token(args.user_id, args.role, expires_minutes=args.minutes))


if __name__ == "__main__":
    main()
