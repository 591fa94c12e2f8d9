"""Package entry point for ``python -m transcript_refiner``.

HOW: Delegates to the CLI's main(), which dispatches the convert,
refine, and serve subcommands.
"""

from transcript_refiner.cli import main

if __name__ == "__main__":
    main()
