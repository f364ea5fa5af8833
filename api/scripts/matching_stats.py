import argparse
import json
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from matchqueue.deps import close_matching_service, get_matching_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Print match-attempt and queue statistics")
    parser.add_argument("--matches-only", action="store_true", help="skip the queue breakdown")
    args = parser.parse_args()

    service = get_matching_service()
    try:
        report = {"matching": service.get_matching_stats()}
        if not args.matches_only:
            report["queue"] = service.get_queue_stats()
    finally:
        close_matching_service()

    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
