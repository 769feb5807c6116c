"""
Shared constants used across the ingestion pipeline.
"""

# Audio formats
SUPPORTED_AUDIO_FORMATS = [
    ".mp3", ".flac", ".ogg", ".m4a", ".wav",
    ".opus", ".aac", ".wma", ".alac", ".aiff"
]

# Album grouping
SINGLES_ALBUM = "Singles"

# Cover art
COVER_BASENAMES = ["cover", "folder", "album", "artwork"]
COVER_EXTENSIONS = ["jpg", "jpeg", "png"]
PLACEHOLDER_COVER = "/placeholder-album.png"
COVER_URL_PREFIX = "/covers"

# Object store
DEFAULT_R2_REGION = "auto"
DEFAULT_PRESIGNED_URL_EXPIRY = 3600  # seconds
DEFAULT_LIST_PAGE_SIZE = 1000
DEFAULT_NETWORK_TIMEOUT = 30  # seconds

# Scan settings
DEFAULT_SCAN_WORKERS = 4
MAX_SCAN_WORKERS = 16
DEFAULT_SCAN_INTERVAL_HOURS = 24
DEFAULT_SCAN_MAX_RETRIES = 3
DEFAULT_SCAN_RETRY_DELAY_SECONDS = 5
DEFAULT_SCAN_INITIAL_DELAY_SECONDS = 5
SUMMARY_ERROR_LIMIT = 10

# S3 Provider endpoints
CLOUDFLARE_R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"

# Configuration paths
DEFAULT_DATA_DIR = "~/.local/share/soundsible-ingest"
DEFAULT_DB_FILENAME = "music.db"
DEFAULT_COVERS_DIRNAME = "covers"

# API
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 5005
