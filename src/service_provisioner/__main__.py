"""Entry point for the service provisioner."""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
