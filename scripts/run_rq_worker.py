"""Run RQ workers for the call queue inside the Flask app context.

Usage:
  python scripts/run_rq_worker.py              # one worker
  python scripts/run_rq_worker.py --workers 4  # four processes, four calls at a time

Each worker handles one call at a time, so run several to process calls
concurrently. Jobs that use `current_app` or the Flask-SQLAlchemy session
work normally because every worker owns an app context.
"""

import argparse
import os
import sys

# Ensure project root is on sys.path when running from scripts/ or other cwd
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import redis
from rq import Queue, Worker

from loadvoice import create_app


def run_worker(burst=False):
    app = create_app()
    redis_url = app.config.get('REDIS_URL') or os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    conn = redis.from_url(redis_url)
    with app.app_context():
        q = Queue(app.config.get('RQ_QUEUE_NAME', 'calls'), connection=conn)
        worker = Worker([q], connection=conn)
        app.logger.info('RQ worker starting (pid %s) on queue %s', os.getpid(), q.name)
        try:
            worker.work(burst=burst, logging_level=app.config.get('LOG_LEVEL', 'INFO'))
        finally:
            app.logger.info('RQ worker exiting (pid %s)', os.getpid())


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--workers', type=int, default=1, help='number of worker processes')
    parser.add_argument('--burst', action='store_true', help='exit once the queue is empty')
    args = parser.parse_args(argv)

    if args.workers <= 1:
        run_worker(burst=args.burst)
        return 0

    children = []
    for _ in range(args.workers):
        pid = os.fork()
        if pid == 0:
            try:
                run_worker(burst=args.burst)
            finally:
                os._exit(0)
        children.append(pid)

    status = 0
    for pid in children:
        _, code = os.waitpid(pid, 0)
        status = status or os.waitstatus_to_exitcode(code)
    return status


if __name__ == '__main__':
    sys.exit(main())
