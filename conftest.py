"""Configure test suite environment"""
import os
import sys

# Research modules live at the project root
project_root = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, project_root)
