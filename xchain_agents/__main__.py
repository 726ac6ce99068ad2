"""Entry point for `python -m xchain_agents`."""

import sys

from xchain_agents.cli import main

sys.exit(main())
