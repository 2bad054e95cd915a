"""Allow ``python -m vmcatalog``."""

import sys

from vmcatalog.cli import main

sys.exit(main())
