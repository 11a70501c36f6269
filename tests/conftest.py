import sys
from pathlib import Path

# tests/ から見て 1 つ上 = プロジェクトルート
# (core.csv_codec と backend.fastapi_app を editable install なしで import するため)
PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
