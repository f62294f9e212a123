"""Generate the private key shared by the credential authority and the game server.

Usage: uv run python bin/generate-private-key.py [--path private.key] [--force]

Both processes must read the same key file. Anyone holding it can forge
connect tokens, so keep it out of version control.
"""

import argparse
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from shared.auth.keys import generate_private_key, write_private_key


def main() -> None:
    parser = argparse.ArgumentParser(description="Write a fresh 32-byte connect token signing key")
    parser.add_argument("--path", type=Path, default=Path("private.key"), help="Key file to write")
    parser.add_argument("--force", action="store_true", help="Overwrite an existing key file")
    args = parser.parse_args()

    if args.path.exists() and not args.force:
        print(f"Error: {args.path} already exists. Pass --force to replace it.")
        print("Replacing the key invalidates every connect token issued with the old one.")
        sys.exit(1)

    write_private_key(args.path, generate_private_key())
    print(f"Private key written to {args.path} (mode 0600)")


if __name__ == "__main__":
    main()
