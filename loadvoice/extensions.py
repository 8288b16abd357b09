from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_migrate import Migrate
from redis import Redis
from rq import Queue
from flask import current_app

# kwargs understood by Queue.enqueue but not by the job function itself
RQ_KEYS = {'job_timeout', 'timeout', 'at_front', 'depends_on', 'result_ttl', 'ttl', 'failure_ttl', 'meta', 'description', 'job_id'}


class SyncJob:
    """Stand-in for rq.job.Job when a job ran in-process."""

    def __init__(self, result=None):
        self.id = None
        self.result = result


class RQWrapper:
    def __init__(self):
        self.redis = None
        self.queue = None

    def init_app(self, app):
        url = app.config.get("REDIS_URL")
        if not url:
            app.logger.info('REDIS_URL not set, jobs run synchronously')
            return
        try:
            self.redis = Redis.from_url(url)
            self.redis.ping()
            self.queue = Queue(app.config.get("RQ_QUEUE_NAME", "calls"), connection=self.redis)
        except Exception:
            # no redis server (dev machine): run jobs in-process
            app.logger.exception('Redis/RQ init failed, falling back to sync execution')
            self.redis = None
            self.queue = None

    def _run_sync(self, func, *args, **kwargs):
        safe_kwargs = {k: v for k, v in kwargs.items() if k not in RQ_KEYS}
        return SyncJob(func(*args, **safe_kwargs))

    def enqueue(self, func, *args, **kwargs):
        """Enqueue to RQ when available, otherwise run the job inline.

        Errors raised by an inline job propagate to the caller. The pipeline
        job records its failures on the call row and returns normally.
        """
        if not self.queue:
            return self._run_sync(func, *args, **kwargs)
        try:
            return self.queue.enqueue(func, *args, **kwargs)
        except Exception:
            current_app.logger.exception('RQ enqueue failed, falling back to sync execution')
            return self._run_sync(func, *args, **kwargs)


db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
rq = RQWrapper()
