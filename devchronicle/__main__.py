"""
Package entry point for DevChronicle.
"""

from .main import run

if __name__ == "__main__":
    run()
