"""Entry point for ``python -m autometrics_gen``."""

from autometrics_gen.cli import main

if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()
