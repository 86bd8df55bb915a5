import os
import sys
import tempfile

# Point the module-level stores at a throwaway directory before anything imports them.
_DATA_DIR = tempfile.mkdtemp(prefix="marketplace-tests-")
os.environ.setdefault("MARKETPLACE_DB_PATH", os.path.join(_DATA_DIR, "marketplace.sqlite3"))
os.environ.setdefault("CHAT_DB_PATH", os.path.join(_DATA_DIR, "local_state.sqlite3"))

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
