"""
wavpitch

Pitch tracking for recorded audio: splits clips at silence, scans them with
an autocorrelation pitch detector and summarises the result as compact
frequency statistics.
"""

__version__ = "1.0.0"
