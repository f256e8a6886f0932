"""Copy generated data into the static site's asset directory."""

import shutil
from pathlib import Path

from src.core.logger import logger


def sync_data_to_site(source_dir: str | Path, target_dir: str | Path) -> Path:
    """
    Replace ``target_dir`` with a verbatim copy of ``source_dir``.

    The target is cleared first so that dates removed from the source do not linger.

    Args:
        source_dir: Generated data tree (``data/``).
        target_dir: Site asset directory (``site/public/data``).

    Returns:
        Path: The target directory.

    Raises:
        FileNotFoundError: If ``source_dir`` does not exist.
    """
    source = Path(source_dir)
    target = Path(target_dir)
    if not source.is_dir():
        raise FileNotFoundError(f"Missing folder: {source}")

    shutil.rmtree(target, ignore_errors=True)
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(source, target)

    logger.info(f"Synced {source} -> {target}")
    return target
