#!/usr/bin/env python3
"""
Celery worker startup script.
This script can be used to start Celery workers for the sync queues.
"""

import sys
import subprocess
import argparse
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.config import get_settings

QUEUES = {
    "messages": ["process-slack-messages"],
    "files": ["upload-files-to-zendesk"],
    "account": ["subscription-changed", "slack-app-uninstalled"],
}


def start_worker(worker_type="all", concurrency=None, loglevel="info"):
    """Start a Celery worker with specific configuration."""
    settings = get_settings()

    if worker_type == "all":
        queues = [queue for names in QUEUES.values() for queue in names]
    else:
        queues = QUEUES[worker_type]

    cmd = [
        "celery",
        "-A", "app.tasks.celery_app",
        "worker",
        "--loglevel", loglevel,
        "--queues", ",".join(queues),
        "--hostname", f"{worker_type}_worker@%h",
    ]

    if worker_type == "files":
        # Downloads and uploads are slow, keep concurrency low
        cmd.extend(["--concurrency", str(concurrency) if concurrency else "1"])
    else:
        cmd.extend(["--concurrency", str(concurrency) if concurrency else "2"])

    cmd.extend([
        "--prefetch-multiplier", "1",
        "--max-tasks-per-child", "1000"
    ])

    print(f"Starting {worker_type} Celery worker...")
    print(f"Command: {' '.join(cmd)}")
    print(f"Broker URL: {settings.celery_broker_url}")
    print(f"Result Backend: {settings.celery_result_backend}")

    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        print("\nShutting down worker...")
    except subprocess.CalledProcessError as e:
        print(f"Error starting worker: {e}")
        sys.exit(1)


def start_flower(port=5555):
    """Start Flower monitoring."""
    cmd = [
        "celery",
        "-A", "app.tasks.celery_app",
        "flower",
        "--port", str(port)
    ]

    print(f"Starting Flower monitoring on port {port}...")
    print(f"Command: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        print("\nShutting down Flower...")
    except subprocess.CalledProcessError as e:
        print(f"Error starting Flower: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Start Celery components")
    parser.add_argument(
        "component",
        choices=["worker", "flower"],
        help="Component to start"
    )
    parser.add_argument(
        "--worker-type",
        choices=["all"] + list(QUEUES),
        default="all",
        help="Queues the worker consumes (only for worker component)"
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="Number of concurrent worker processes"
    )
    parser.add_argument(
        "--loglevel",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Log level"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=5555,
        help="Port for Flower (only for flower component)"
    )

    args = parser.parse_args()

    if args.component == "worker":
        start_worker(args.worker_type, args.concurrency, args.loglevel)
    elif args.component == "flower":
        start_flower(args.port)


if __name__ == "__main__":
    main()
