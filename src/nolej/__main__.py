"""Allow running the bridge CLI with ``python -m nolej``."""

import sys

from nolej.cli import main

sys.exit(main())
