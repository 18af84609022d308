"""
DevChronicle: turns mined development days into bullet summaries using live
completion calls or provider batch jobs.
"""

__version__ = "0.4.0"
