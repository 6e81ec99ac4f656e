#!/usr/bin/env python3
"""
Merge one user into another from the command line and print the merge log.
Run: python scripts/merge_users.py --to 2 --from 5 [--rehearse] [--debug-db]
--rehearse runs the whole merge and rolls it back at the end (nothing is changed).
"""
import argparse
import sys
from pathlib import Path

# scripts/ -> project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from mergeusers.config import settings
from mergeusers.core.errors import ConfigurationError
from mergeusers.core.merge_config import load_merge_config
from mergeusers.db.session import engine
from mergeusers.services.merge_tool import MergeUserTool


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--to", dest="to_id", type=int, required=True, help="user id to keep")
    parser.add_argument("--from", dest="from_id", type=int, required=True, help="user id to merge away")
    parser.add_argument("--rehearse", action="store_true", help="roll back at the end")
    parser.add_argument("--debug-db", action="store_true", help="log every SQL statement")
    args = parser.parse_args()

    try:
        config = load_merge_config(settings).with_flags(
            always_rollback=True if args.rehearse else None,
            debug_db=True if args.debug_db else None,
        )
        tool = MergeUserTool(engine, config)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print(f"Merging user {args.from_id} into user {args.to_id} ...")
    result = tool.merge(args.to_id, args.from_id)
    for line in result.log:
        print(f"  {line}")
    print(f"{'Done' if result.success else 'FAILED'}. Merge log id: {result.log_id}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
