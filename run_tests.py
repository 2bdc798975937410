#!/usr/bin/env python
"""Test runner script for IDE integration"""

import subprocess
import sys

SUITES = {"unit": ["tests/unit/", "-v"], "integration": ["tests/integration/", "-v"]}

# "unit" or "integration" selects a suite; anything else is passed to pytest as-is
if len(sys.argv) == 2 and sys.argv[1] in SUITES:
    args = SUITES[sys.argv[1]]
else:
    args = sys.argv[1:] if len(sys.argv) > 1 else ["tests/", "-v"]

result = subprocess.run([sys.executable, "-m", "pytest"] + args)

sys.exit(result.returncode)
