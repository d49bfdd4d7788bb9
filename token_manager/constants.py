ALGORITHM = "RS256"

DEFAULT_KEY_PREFIX = "tm"
DEFAULT_KEY_SIZE = 2048
MIN_KEY_SIZE = 2048

# seconds
DEFAULT_PUBLIC_KEY_TTL = 24 * 60 * 60
DEFAULT_OLD_KEY_TTL = 30 * 24 * 60 * 60
DEFAULT_FETCH_TIMEOUT = 5.0
DEFAULT_KEY_ID_REFRESH = 60

AUTH_HEADER = "Authorization"

REQUIRED_CLAIMS = ("exp", "iss", "aud")
