"""Allow ``python -m iotctl``."""

from __future__ import annotations

import sys

from iotctl.cli import main

if __name__ == "__main__":
    sys.exit(main())
