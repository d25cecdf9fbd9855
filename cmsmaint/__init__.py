"""CMS search index and cache maintenance toolkit"""

__version__ = "1.2.0"
