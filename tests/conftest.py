import sys
from pathlib import Path

# Ensure the repository root is on sys.path for tests
ROOT = str(Path(__file__).resolve().parent.parent)
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
