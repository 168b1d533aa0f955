"""
Resonance - Semantic Universe Store

This package organizes text into named universes, embeds it through a
pluggable embedding provider, persists the vectors per universe and answers
similarity queries against them.
"""

__version__ = "1.0.0"
