"""Entry point for `python -m session_monitor`."""

import sys


def main():
    from session_monitor.app import run
    sys.exit(run())


if __name__ == "__main__":
    main()
