"""
Copy the generated data tree into the static site's asset directory.

Run with:
    $env:PYTHONPATH="."; python scripts/sync_data_to_site.py
"""

import sys

from src.core.config import load_config
from src.pipeline.publish import sync_data_to_site


def main() -> int:
    config = load_config()
    try:
        target = sync_data_to_site(config["data_dir"], config["site_data_dir"])
    except FileNotFoundError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print(f"Synced data -> {target}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
