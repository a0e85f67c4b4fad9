"""Release and schema numbers shared by the config loader, API and HTTP client."""

__version__ = "0.3.0"

# v2 switched cache durations from days to seconds and added the fallback TTL.
CONFIG_SCHEMA_VERSION = 2

# Product token sent by the minimal-header fallback scrape.
BOT_PRODUCT_TOKEN = "LinkPreviewBot/1.0"
