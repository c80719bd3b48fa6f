"""feedsync: ranked, realtime-consistent social feeds with offline fallback."""

__version__ = "0.1.0"
