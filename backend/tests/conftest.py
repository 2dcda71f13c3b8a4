import os
import tempfile

# api.py opens the database on import; keep test runs off the working directory
_TMP = tempfile.mkdtemp(prefix="gridlog-tests-")
os.environ.setdefault("GL_DB_PATH", os.path.join(_TMP, "gridlog-test.db"))
