import argparse
import json
import sys
import time
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from matchqueue.deps import close_matching_service, get_matching_service


def main() -> None:
    parser = argparse.ArgumentParser(description="Expire stale queue entries, then pair WAITING users within each intent")
    parser.add_argument("--loop", action="store_true", help="keep sweeping until interrupted")
    parser.add_argument("--interval-seconds", type=float, default=60.0)
    parser.add_argument("--expire-only", action="store_true", help="skip the pairing pass")
    args = parser.parse_args()

    service = get_matching_service()
    try:
        while True:
            report = {"expired": service.expire_stale_entries()}
            if not args.expire_only:
                report["pairs"] = service.process_queue()["pairs"]
            print(json.dumps(report))
            if not args.loop:
                break
            time.sleep(args.interval_seconds)
    except KeyboardInterrupt:
        pass
    finally:
        close_matching_service()


if __name__ == "__main__":
    main()
