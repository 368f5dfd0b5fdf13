import sys
from pathlib import Path

# Put <repo root> on sys.path so "import src.*" works without installing
ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
