# media_insights/__init__.py
"""
Media Insights - media usage indexing for content sites.

Builds and maintains an index of which media asset is used on which page,
derived from the site's preview audit log and media-operations log.
"""

__version__ = "1.0.0"
__title__ = "Media Insights"
