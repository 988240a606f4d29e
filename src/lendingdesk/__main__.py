"""Main entry point for the lendingdesk package."""

from lendingdesk.cli import main

if __name__ == "__main__":
    main()
