"""Post-install environment check.

    python -m venv .venv
    pip install -e .[test]
    python setup_env.py

Confirms the third-party stack and the pipeline modules import, then reports
which API keys are visible (environment or .env). Exits 1 if anything is missing.
"""

import importlib
import os
import sys

# (import name, distribution name)
REQUIRED_PACKAGES = [
    ("requests", "requests"),
    ("pandas", "pandas"),
    ("yaml", "PyYAML"),
    ("dotenv", "python-dotenv"),
]

PIPELINE_MODULES = [
    "src.providers.news",
    "src.providers.market",
    "src.providers.enrichment",
    "src.pipeline.engine",
]


def check_packages() -> bool:
    print("Third-party packages:")
    missing = []
    for module, dist in REQUIRED_PACKAGES:
        try:
            importlib.import_module(module)
        except ImportError:
            missing.append(dist)
            print(f"  [MISSING] {dist}")
        else:
            print(f"  [OK] {dist}")
    if missing:
        print(f"\n  Install with:  pip install {' '.join(missing)}")
    return not missing


def check_pipeline_modules() -> bool:
    print("\nPipeline modules:")
    for module in PIPELINE_MODULES:
        try:
            importlib.import_module(module)
        except Exception as exc:
            print(f"  [ERROR] {module}: {exc}")
            return False
    print(f"  [OK] {len(PIPELINE_MODULES)} modules import cleanly.")
    return True


def report_credentials() -> None:
    from dotenv import load_dotenv

    load_dotenv()
    print("\nCredentials:")
    if os.getenv("NEWSAPI_KEY"):
        print("  [OK] NEWSAPI_KEY")
    else:
        print("  [MISSING] NEWSAPI_KEY — run_pipeline.py will exit without it.")
    if os.getenv("HUGGINGFACE_API_KEY"):
        print("  [OK] HUGGINGFACE_API_KEY — LLM enrichment enabled.")
    else:
        print("  [INFO] HUGGINGFACE_API_KEY not set — digests stay rule-based.")


def main() -> int:
    print("=" * 60)
    print("  Theme Pulse — environment check")
    print("=" * 60)
    if not check_packages() or not check_pipeline_modules():
        return 1
    report_credentials()
    print("\nReady. Run:  python run_pipeline.py")
    return 0


if __name__ == "__main__":
    sys.exit(main())
