"""recipeshare: recipe persistence and media pipeline service."""
