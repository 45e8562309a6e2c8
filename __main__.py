"""
iAgent EKS environment
Run from the repository root: python . {deploy,status,destroy,plan,help}
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.cli import main  # noqa: E402

sys.exit(main())
