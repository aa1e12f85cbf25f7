"""
Reddit content-acquisition pipeline.

OAuth token lifecycle, rate-limited multi-source fetching, media
resolution and feed assembly.
"""

__version__ = "0.1.0"
