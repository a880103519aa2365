import argparse
import json
import signal
from dataclasses import replace
from datetime import timedelta
from pathlib import Path

from . import __version__
from .ai import AIClient
from .config import Settings, load_settings
from .dispatcher import Dispatcher
from .distribution import WebhookDistributor
from .drafts import DraftStore
from .env import load_env
from .handlers import GENERATE_CONTENT, build_registry
from .logger import get_logger
from .retry import BreakerRegistry, ResilientCaller
from .store import JobStore, JobStoreError
from .worker import Worker


def build_worker(settings: Settings, store: JobStore = None) -> Worker:
    """Wire the store, breakers, collaborators and handlers into a Worker."""
    store = store or JobStore.from_url(settings.database_url)
    breakers = BreakerRegistry(settings.breaker)

    ai_caller = ResilientCaller(breakers.get("ai"), retry=settings.retry, timeout=settings.ai_timeout)
    generator = AIClient(
        ai_caller,
        api_key=settings.ai_api_key,
        base_url=settings.ai_base_url,
        model=settings.ai_model,
    )
    drafts = DraftStore(store.engine)
    distributor = WebhookDistributor(
        settings.distribution_webhooks,
        breakers,
        retry=settings.retry,
        default_channels=settings.distribution_channels,
    )

    registry = build_registry(generator, drafts=drafts, distributor=distributor)
    return Worker(store, Dispatcher(store, registry), poll_interval=settings.poll_interval)


def _print_json(data: dict) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> None:
    JobStore.from_url(settings.database_url)
    print(f"Database ready: {settings.database_url}")


def cmd_enqueue(args: argparse.Namespace, settings: Settings) -> None:
    try:
        payload = json.loads(args.payload) if args.payload else {}
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid --payload JSON: {e}")
    store = JobStore.from_url(settings.database_url)
    try:
        job_id = store.enqueue(args.type, payload)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"Job queued: {job_id}")


def cmd_generate(args: argparse.Namespace, settings: Settings) -> None:
    payload = {"topic": args.topic}
    if args.author:
        payload["authorId"] = args.author
    store = JobStore.from_url(settings.database_url)
    job_id = store.enqueue(GENERATE_CONTENT, payload)
    print(f"Job queued: {job_id}")


def cmd_status(args: argparse.Namespace, settings: Settings) -> None:
    store = JobStore.from_url(settings.database_url)
    data = store.status(args.id)
    if data is None:
        raise SystemExit(f"Job not found: {args.id}")
    _print_json(data)


def cmd_draft(args: argparse.Namespace, settings: Settings) -> None:
    store = JobStore.from_url(settings.database_url)
    draft = DraftStore(store.engine).get(args.id)
    if draft is None:
        raise SystemExit(f"Draft not found: {args.id}")
    _print_json(draft.to_dict())


def cmd_list(args: argparse.Namespace, settings: Settings) -> None:
    store = JobStore.from_url(settings.database_url)
    try:
        jobs = store.list_jobs(status=args.status, limit=args.limit)
    except ValueError as e:
        raise SystemExit(str(e))
    counts = store.counts()
    print("  ".join(f"{status}={n}" for status, n in counts.items()))
    if not jobs:
        print("No jobs.")
        return
    print()
    for job in jobs:
        print(f"{job.id}  {job.status:<10}  {job.type:<20}  attempts={job.attempts}  created={job.created_at:%Y-%m-%d %H:%M:%S}")


def cmd_stuck(args: argparse.Namespace, settings: Settings) -> None:
    store = JobStore.from_url(settings.database_url)
    jobs = store.find_stuck(timedelta(minutes=args.minutes))
    if not jobs:
        print(f"No jobs PROCESSING for more than {args.minutes} minute(s).")
        return
    print(f"Found {len(jobs)} job(s) PROCESSING for more than {args.minutes} minute(s):\n")
    for job in jobs:
        print(f"{job.id}  {job.type:<20}  attempts={job.attempts}  locked={job.locked_at:%Y-%m-%d %H:%M:%S}")


def cmd_requeue(args: argparse.Namespace, settings: Settings) -> None:
    store = JobStore.from_url(settings.database_url)
    try:
        new_id = store.requeue(args.id)
    except JobStoreError as e:
        raise SystemExit(str(e))
    print(f"Job queued: {new_id}")


def cmd_worker(args: argparse.Namespace, settings: Settings) -> None:
    worker = build_worker(settings)
    if args.interval is not None:
        worker.poll_interval = args.interval

    if args.once:
        processed = worker.drain()
        print(f"Done. processed={processed}")
        return

    def _shutdown(signum, frame):
        print(f"\nReceived signal {signum}. Stopping worker")
        worker.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    worker.run_forever()


def main(argv=None):
    load_env()
    parser = argparse.ArgumentParser(prog="contentqueue", description="Background job queue and worker")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--database-url", help="SQLAlchemy URL (or set DATABASE_URL)")

    subparsers = parser.add_subparsers(dest="command")
    ini = subparsers.add_parser("init-db", help="Create the job tables")
    ini.set_defaults(func=cmd_init_db)

    enq = subparsers.add_parser("enqueue", help="Queue a job of any type")
    enq.add_argument("--type", required=True, help="Job type, e.g. GENERATE_CONTENT")
    enq.add_argument("--payload", help="Job payload as a JSON object")
    enq.set_defaults(func=cmd_enqueue)

    gen = subparsers.add_parser("generate", help="Queue a GENERATE_CONTENT job")
    gen.add_argument("--topic", required=True, help="Topic to write about")
    gen.add_argument("--author", help="Author id for the saved draft")
    gen.set_defaults(func=cmd_generate)

    sts = subparsers.add_parser("status", help="Show a job's status, result or error")
    sts.add_argument("--id", required=True, help="Job id")
    sts.set_defaults(func=cmd_status)

    drf = subparsers.add_parser("draft", help="Show a draft saved by a GENERATE_CONTENT job")
    drf.add_argument("--id", required=True, help="Draft id (the job result's draftId)")
    drf.set_defaults(func=cmd_draft)

    lst = subparsers.add_parser("list", help="List recent jobs")
    lst.add_argument("--status", choices=["PENDING", "PROCESSING", "COMPLETED", "FAILED"], help="Filter by status")
    lst.add_argument("--limit", type=int, default=50, help="Maximum jobs to show (default 50)")
    lst.set_defaults(func=cmd_list)

    stk = subparsers.add_parser("stuck", help="List jobs PROCESSING for too long")
    stk.add_argument("--minutes", type=int, default=30, help="Age threshold in minutes (default 30)")
    stk.set_defaults(func=cmd_stuck)

    req = subparsers.add_parser("requeue", help="Queue a fresh copy of a FAILED job")
    req.add_argument("--id", required=True, help="Failed job id")
    req.set_defaults(func=cmd_requeue)

    wrk = subparsers.add_parser("worker", help="Run the polling worker")
    wrk.add_argument("--interval", type=float, help="Seconds between polls (or set WORKER_POLL_INTERVAL)")
    wrk.add_argument("--once", action="store_true", help="Process queued jobs, then exit")
    wrk.set_defaults(func=cmd_worker)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    settings = load_settings()
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)
    get_logger().configure(
        level=settings.log_level,
        log_dir=Path(settings.log_dir),
        enable_file=settings.log_to_file,
    )

    if hasattr(args, "func"):
        args.func(args, settings)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
