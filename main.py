"""
ASGI entrypoint for deployments.

The FastAPI app lives in `backend/spotshare/main.py` and uses imports like
`from spotshare.db ...`, which requires `backend/` to be importable (either
installed with `pip install -e .` or on `PYTHONPATH`).

From the repo root:
  uvicorn main:app --host 0.0.0.0 --port $PORT
"""

from __future__ import annotations

import sys
from pathlib import Path


_ROOT = Path(__file__).resolve().parent
_BACKEND_DIR = _ROOT / "backend"

# Ensure `import spotshare...` resolves to `backend/spotshare/...`
if str(_BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(_BACKEND_DIR))

from spotshare.main import app  # noqa: E402,F401
