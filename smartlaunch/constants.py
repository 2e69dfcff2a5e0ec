"""
Application constants.

These values are intentionally not configurable via environment variables.
"""

# Session
SESSION_COOKIE_NAME = "smart_launch_session"

# Storage key prefixes
TOKEN_KEY_PREFIX = "smart:token:"
LAUNCH_KEY_PREFIX = "smart:launch:"

# Discovery
SMART_CONFIGURATION_PATH = ".well-known/smart-configuration"
METADATA_PATH = "metadata"
OAUTH_URIS_EXTENSION = "oauth-uris"

# Media types
JSON_CONTENT_TYPE = "application/json"
FHIR_JSON_CONTENT_TYPE = "application/fhir+json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Token is treated as expired this many seconds before its real expiry
TOKEN_EXPIRY_BUFFER_SECONDS = 30

# Background purge of expired sessions and launch contexts
CLEANUP_INTERVAL_SECONDS = 300
