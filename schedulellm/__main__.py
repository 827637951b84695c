"""
Package entry point.

Allows running the application via:

    python -m schedulellm

This simply forwards execution to schedulellm.cli.main().
"""

from schedulellm.cli import main

if __name__ == "__main__":
    main()
