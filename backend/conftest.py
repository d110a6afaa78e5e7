# Ensure '<repo>/backend' is on sys.path so 'import studio_booking' works
# even when pytest is started from inside backend/ without an editable install.
from pathlib import Path
import sys

_BACKEND_DIR = Path(__file__).resolve().parent  # <repo>/backend
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))
