# media_insights/commands/__init__.py
"""
Command-line utilities for Media Insights.

Commands:
    - build_index: Build or refresh a site's media index, or show its status

Usage:
    python -m media_insights.commands.build_index --org myorg --repo mysite
"""
