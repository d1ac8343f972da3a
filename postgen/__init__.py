"""
postgen - multi-pass social media post generation with session caching
and content-similarity deduplication.
"""
__version__ = "1.0.0"
