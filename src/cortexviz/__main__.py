"""
Run with: python -m cortexviz
"""
import sys

from cortexviz.main import main

if __name__ == "__main__":
    sys.exit(main())
