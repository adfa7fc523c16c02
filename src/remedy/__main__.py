# =============================================================================
# Remedy Entry Point for `python -m remedy`
# =============================================================================
# This module allows Remedy to be run as a Python module:
#
#   python -m remedy
#
# This is equivalent to running the 'remedy' command after installation.
# =============================================================================

import sys

from remedy.app import main

if __name__ == "__main__":
    sys.exit(main())
