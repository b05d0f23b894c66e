"""Entry point for ``python -m hyperharness``."""

import sys

from hyperharness.cli import main

sys.exit(main())
