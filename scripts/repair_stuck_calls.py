"""Mark calls stuck in processing/transcribing/extracting as failed.

Usage:
  python scripts/repair_stuck_calls.py                 # STUCK_CALL_MINUTES (default 60)
  python scripts/repair_stuck_calls.py --minutes 30
"""

import argparse
import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from loadvoice import create_app
from loadvoice.jobs.maintenance import repair_stuck_calls


def main(argv=None):
    parser = argparse.ArgumentParser(description='Fail calls that stopped making progress')
    parser.add_argument('--minutes', type=int, default=None, help='minimum minutes since the last update')
    args = parser.parse_args(argv)

    app = create_app()
    with app.app_context():
        repaired = repair_stuck_calls(args.minutes)
        for c in repaired:
            print(f"call {c['id']} ({c['file_name']}): stuck {c['minutes_stuck']} min -> failed")
        print(f'{len(repaired)} call(s) repaired')
    return 0


if __name__ == '__main__':
    sys.exit(main())
