"""idle-exec entry point.

Supports: python -m idle_exec
"""

import sys

from .app import main

if __name__ == "__main__":
    sys.exit(main())
