import os
import sys

# Add the repository root to path so tests can import app, engine, parser and store directly
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
