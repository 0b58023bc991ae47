"""AutoUpload - Watch local files and mirror them to remote storage with per-file upload throttling."""

__version__ = "0.1.0"
__author__ = "AutoUpload Team"
__description__ = "Watch local files and upload them to Dropbox or S3 when they change, coalescing rapid edits"

# Simple imports only - backends imported on demand
__all__ = []
