# installer/common/bootstrap_env.py
from __future__ import annotations
import os

from dotenv import load_dotenv, find_dotenv

# Only fill missing vars; don't overwrite ones already set in the shell/CI
_ENV_PATH = find_dotenv(usecwd=True)
load_dotenv(_ENV_PATH, override=False)

if os.getenv("DEBUG_ENV_BOOTSTRAP") == "1":
    print(f"[env] loaded .env from {_ENV_PATH or '<none>'}")
