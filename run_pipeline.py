"""Theme data pipeline entry point.

Usage:
    python run_pipeline.py [config.yaml]

Loads config.yaml and the theme tickers file, initialises all providers,
runs PipelineEngine, and reports success/failure to stdout and the pipeline log.
A missing NEWSAPI_KEY aborts the run before any theme is processed.
"""

import sys
from dotenv import load_dotenv

load_dotenv()  # must precede src imports so env vars are available at module load

from src.core.config import ConfigError, load_config, load_theme_tickers  # noqa: E402
from src.core.logger import logger  # noqa: E402
from src.pipeline.engine import PipelineEngine  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    """Run the pipeline. Returns 0 on success, 1 on failure."""
    args = sys.argv[1:] if argv is None else argv
    config_path = args[0] if args else "config.yaml"

    try:
        config = load_config(config_path)
        tickers_by_theme = load_theme_tickers(config.get("tickers_file", "theme_tickers.json"))
        engine = PipelineEngine.from_config(config, tickers_by_theme)
    except (FileNotFoundError, ConfigError, ValueError) as exc:
        logger.error(f"run_pipeline: failed to load config: {exc}")
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        summary = engine.run()
    except Exception as exc:
        logger.error(f"run_pipeline: PipelineEngine raised: {exc}", exc_info=True)
        print(f"ERROR: pipeline failed — {exc}", file=sys.stderr)
        return 1

    print(
        f"SUCCESS: {len(summary.succeeded)} theme(s) written for {summary.date}"
        + (f"; skipped: {', '.join(summary.failed)}" if summary.failed else "")
    )
    logger.info(
        f"run_pipeline: completed — written={summary.succeeded} skipped={list(summary.failed)}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
