# main.py
from __future__ import annotations
import sys
from tools.monitor_cli import main

if __name__ == "__main__":
    # bare `python main.py` starts live monitoring
    sys.exit(main(sys.argv[1:] or ["run"]))
