"""
배치 유지보수 진입점 (cron / 수동 실행).

    python -m content_reco.jobs.maintenance vectors [--force]
    python -m content_reco.jobs.maintenance profiles [--max-age-hours 24]
    python -m content_reco.jobs.maintenance metrics [--k 10] [--days 7]
"""
import argparse
import json
import logging
import sys

from ..interface.api_interface import evaluate_metrics, recompute_profiles, revectorize_content

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Content recommendation maintenance jobs")
    sub = parser.add_subparsers(dest="command", required=True)

    vectors = sub.add_parser("vectors", help="Recompute missing or stale content vectors")
    vectors.add_argument("--force", action="store_true", help="Recompute every published item")

    profiles = sub.add_parser("profiles", help="Recompute visitor profiles older than the max age")
    profiles.add_argument("--max-age-hours", type=float, default=24.0)

    metrics = sub.add_parser("metrics", help="Print the offline metrics report")
    metrics.add_argument("--k", type=int, default=10)
    metrics.add_argument("--days", type=int, default=7)
    return parser


def run(args: argparse.Namespace) -> dict:
    if args.command == "vectors":
        return revectorize_content(force=args.force)
    if args.command == "profiles":
        return recompute_profiles(max_age_hours=args.max_age_hours)
    return evaluate_metrics(k=args.k, days=args.days)


def main(argv=None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        summary = run(args)
    except Exception as e:
        logger.error(f"[Maintenance] {args.command} failed: {e}")
        return 1

    print(json.dumps(summary, ensure_ascii=False, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
