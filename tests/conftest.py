from __future__ import annotations

import os

# Keep test runs from writing rotating log files into the working tree.
os.environ.setdefault("LOG_TO_FILE", "false")
