"""
Start the outreach backend (FastAPI under uvicorn).

Settings come from the environment / .env (see outreach/config.py).
Startup failures exit non-zero with a short hint list.
"""

import logging
import sys

from outreach.main import run

HINTS = (
    "DATABASE_URL / DB_PATH points somewhere unwritable or invalid",
    "PORT is already taken by another process",
    "the virtualenv is missing packages (pip install -e .)",
)


def main() -> int:
    try:
        run()
    except Exception:
        logging.basicConfig(level=logging.ERROR)
        logging.exception("Outreach API failed to start")
        print("\nOutreach API failed to start. Usual suspects:", file=sys.stderr)
        for hint in HINTS:
            print(f"  - {hint}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
