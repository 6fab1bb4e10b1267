"""
Allow running sentinelctl as a module: python -m log_sentinel.cli
"""

import sys
from .sentinelctl import main

if __name__ == "__main__":
    sys.exit(main())
