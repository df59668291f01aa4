import os
import tempfile

# Keep the shared log file (and any default data paths) out of /app/data.
os.environ.setdefault("COURTVIEWER_DATA_DIR", tempfile.mkdtemp(prefix="courtviewer-tests-"))
