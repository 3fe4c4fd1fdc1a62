"""
Background Worker Runner
Run this as a separate process: python run_worker.py [--burst | --check]
"""

import argparse
import logging
import sys
from pathlib import Path

from arq.worker import check_health, run_worker

sys.path.insert(0, str(Path(__file__).parent))

from vibewell.worker import WorkerSettings  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Vibewell reminders, expiry, waitlist and audit worker")
    parser.add_argument("--burst", action="store_true", help="Process queued jobs then exit")
    parser.add_argument("--check", action="store_true", help="Exit non-zero unless a worker reported healthy recently")
    args = parser.parse_args()

    if args.check:
        return check_health(WorkerSettings)

    logger.info(f"🚀 Starting Vibewell background worker{' (burst)' if args.burst else ''}...")
    try:
        run_worker(WorkerSettings, burst=args.burst)
    except KeyboardInterrupt:
        logger.info("👋 Worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Worker crashed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
