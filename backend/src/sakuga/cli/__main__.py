"""CLI entry point for sakuga.cli module.

Enables execution via: python -m sakuga.cli
"""

from sakuga.cli.recover_jobs import main

if __name__ == "__main__":
    raise SystemExit(main())
