#!/usr/bin/env python3
"""
run_panel_job.py
Run one panel generation job in-process with the mock generation client
and print (or save) the finished job as JSON.

Examples:
  # Three panels for a garden business in Musterstadt
  python scripts/run_panel_job.py --company "Gartenbau Müller" --city Musterstadt --panels 3

  # Explicit topic per panel, keep retries fast, save the result
  python scripts/run_panel_job.py --city Musterstadt --topic "Gartenpflege" --topic "Baumschnitt" \
      --backoff-ms 100 -o job.json -v
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import Any, Dict, Optional

from server.models.panel import Geo, UserInput
from server.services.generation import MockGenerationClient
from server.services.job_service import JobService
from server.services.job_store import JobStore
from server.services.orchestrator import JobOrchestrator
from server.services.persistence import FileJobPersistence, MemoryJobPersistence
from server.utils.file_handler import write_json


# ---------- Logging ----------
def setup_logging(verbosity: int) -> None:
    level = logging.WARNING if verbosity == 0 else logging.INFO if verbosity == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

log = logging.getLogger("run_panel_job")


def save_json(obj: Dict[str, Any], out_path: Optional[str]) -> None:
    if not out_path:
        print(json.dumps(obj, indent=2, ensure_ascii=False))
        return
    write_json(Path(out_path), obj)
    log.info("Saved %s", out_path)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate content panels for a business description.")
    parser.add_argument("--company", default="", help="Company name used for the shared topic.")
    parser.add_argument("--city", default="", help="City the panel titles should mention.")
    parser.add_argument("--region", default="", help="Region accepted instead of the city.")
    parser.add_argument("--content", default="", help="Free-text business description.")
    parser.add_argument("--panels", type=int, default=3, help="Number of panels (1-12).")
    parser.add_argument("--topic", action="append", help="Explicit topic; repeat once per panel.")

    # Orchestration knobs
    parser.add_argument("--retries", type=int, default=2, help="Retries per panel after the first attempt.")
    parser.add_argument("--backoff-ms", type=int, default=1000, help="Initial backoff between retries.")
    parser.add_argument("--jobs-dir", help="Persist job snapshots into this directory.")

    # Output + verbosity
    parser.add_argument("-o", "--out", help="Path to write the job JSON (default: print to stdout).")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG.")
    return parser


async def run(args) -> int:
    setup_logging(args.verbose)

    if args.topic and len(args.topic) > args.panels:
        log.warning("More topics than panels; extra topics are ignored")

    persistence = FileJobPersistence(args.jobs_dir) if args.jobs_dir else MemoryJobPersistence()
    store = JobStore(persistence)
    client = MockGenerationClient()
    orchestrator = JobOrchestrator(
        store,
        client,
        max_retries=args.retries,
        initial_backoff_ms=args.backoff_ms,
        profiling_delay_ms=0,
        design_init_delay_ms=0
    )
    service = JobService(store=store, client=client, orchestrator=orchestrator)

    user_input = UserInput(
        content=args.content,
        geo=Geo(company_name=args.company, city=args.city, region=args.region),
        panel_count=args.panels,
        topics=args.topic
    )

    job_id = service.start(user_input)
    log.info("Started job %s", job_id)
    await orchestrator.wait(job_id)
    store.flush()

    job = service.get_status(job_id)
    save_json(job.model_dump(mode="json"), args.out)
    return 0 if job.state.value == "done" else 1


def main():
    parser = build_arg_parser()
    args = parser.parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except KeyboardInterrupt:
        print("\nInterrupted.")
    except Exception as e:
        log.exception("Fatal error: %s", e)
        sys.exit(1)

if __name__ == "__main__":
    main()
