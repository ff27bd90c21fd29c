"""CLI entry point for brandshot.cli module.

Enables execution via: python -m brandshot.cli (runs generation dispatchers)
"""

from brandshot.cli.run_worker import main

if __name__ == "__main__":
    main()
