"""
M3U8 Window Proxy
Reverse proxy that trims HLS playlists to a requested time window
"""

__version__ = "1.0.0"
