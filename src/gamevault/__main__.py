"""Main entry point for the gamevault package."""

from gamevault.cli import main

if __name__ == "__main__":
    main()
