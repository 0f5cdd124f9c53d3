# Ensure tests import the `mirror` package from this checkout first,
# whether pytest is started from the repository root or a subdirectory.
import os
import sys

SERVICE_ROOT = os.path.dirname(__file__)

if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)
