# modelreview/__main__.py
from __future__ import annotations

from modelreview.cli.main import main

if __name__ == "__main__":
    raise SystemExit(main())
