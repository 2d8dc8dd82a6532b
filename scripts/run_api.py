#!/usr/bin/env python3
"""Serve the userhub API with uvicorn.

Environment Variables:
    API_HOST: Interface to bind (default 0.0.0.0)
    API_PORT: Port to bind (default 8000)
"""
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import uvicorn


def main() -> None:
    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "8000"))
    uvicorn.run("userhub.app:create_app", factory=True, host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
