"""Root conftest — make the src-layout package importable without pip install."""

import sys
from pathlib import Path

# src/ goes first so `import dynaproxy` resolves to the working tree
_src = str(Path(__file__).parent / "src")
if _src not in sys.path:
    sys.path.insert(0, _src)
