import sys
from pathlib import Path


# Put backend/src on sys.path so tests can import `config`, `models` and `services.*` directly.
ROOT = Path(__file__).resolve().parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
