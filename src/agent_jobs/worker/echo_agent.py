"""Local deterministic agent for CLI worker integration tests and demos."""

from __future__ import annotations

import argparse
import json
import sys
import time
from pathlib import Path

from agent_jobs.contracts import write_json


def main(argv: list[str] | None = None) -> int:
    """Write a fixed story outcome derived from the prompt."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--prompt-file", required=True)
    parser.add_argument("--result-file", default=None)
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument("--sleep-seconds", type=float, default=0.0)
    parser.add_argument("--no-passes", action="store_true")
    parser.add_argument(
        "--stdout-only",
        action="store_true",
        help="Print the result to stdout instead of writing the result file.",
    )
    args = parser.parse_args(argv)

    if args.sleep_seconds:
        time.sleep(args.sleep_seconds)

    prompt = Path(args.prompt_file).read_text("utf-8")
    summary = next((line.strip() for line in prompt.splitlines() if line.strip()), "done")
    payload = {
        "success": args.exit_code == 0,
        "summary": summary,
        "filesChanged": [],
        "learnings": ["echo agent ran"],
        "passes": not args.no_passes,
    }

    if args.stdout_only or args.result_file is None:
        print("Work finished.")
        print(f"```json\n{json.dumps(payload)}\n```")
    else:
        write_json(Path(args.result_file), payload)
        print(f"Result written to {args.result_file}")
    return args.exit_code


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
