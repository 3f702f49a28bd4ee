"""
Shared constants used across the media server.
"""

# Audio formats admitted into the catalog (compared case-insensitively)
SUPPORTED_AUDIO_FORMATS = [
    "mp3", "flac", "wav", "aac", "m4a", "ogg"
]

# Metadata sentinels for filenames that don't follow "Artist - Title - Album"
UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"
FILENAME_FIELD_SEPARATOR = " - "

# Catalog settings
DEFAULT_PREFIX_BYTES = 50000  # reserved for tag parsing
DEFAULT_CATALOG_WORKERS = 8
DEFAULT_FETCH_TIMEOUT = 10.0  # seconds, per object
DEFAULT_CATALOG_TIMEOUT = 30.0  # seconds, whole prefix-fetch phase
DEFAULT_CATALOG_CACHE_TTL = 0  # seconds, 0 disables

# Streaming settings
DEFAULT_STREAM_CHUNK_SIZE = 64 * 1024  # bytes
DEFAULT_AUDIO_CONTENT_TYPE = "audio/mpeg"
DEFAULT_IMAGE_CONTENT_TYPE = "image/jpeg"
PLACEHOLDER_CONTENT_TYPE = "image/svg+xml"

# Store-reported types that carry no information
GENERIC_CONTENT_TYPES = ["application/octet-stream", "binary/octet-stream", ""]

CONTENT_TYPES_BY_EXTENSION = {
    "mp3": "audio/mpeg",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "aac": "audio/aac",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
}

# Cache directives
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000"
PLACEHOLDER_CACHE_CONTROL = "public, max-age=3600"

# Cover art candidates
COVER_EXTENSIONS = [".jpg", ".png"]
FOLDER_COVER_BASENAME = "cover"

# CORS
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "*",
}
CORS_EXPOSE_HEADERS = ["Content-Range", "Content-Length", "Accept-Ranges"]

# S3 Provider endpoints
CLOUDFLARE_R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/r2-music-server"
CONFIG_FILENAME = "config.json"

# Network Settings
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5005
