"""Pytest configuration shared by the whole suite."""

import os
import sys
import tempfile
from pathlib import Path

_SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(_SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(_SRC_ROOT))

# import 時に生成されるモジュール共有ストアを一時ディレクトリへ逃がし、
# 作業ツリーに .data/ を作らないようにする。各テストは tmp_path で個別 DB を使う。
os.environ.setdefault(
    "SRS_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="examito-tests-")) / "srs.sqlite3"),
)
