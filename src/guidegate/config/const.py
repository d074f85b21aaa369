# src/guidegate/config/const.py
from __future__ import annotations

# Hard defaults shipped with the build; deployments override them via settings.
DEFAULT_MAX_DEVICES: int = 3
DEFAULT_SESSION_DURATION_SECONDS: int = 8 * 60 * 60
DEFAULT_RETENTION_DAYS: int = 30
DEFAULT_RETENTION_MS: int = DEFAULT_RETENTION_DAYS * 24 * 60 * 60 * 1000

DEVICE_KEY_PREFIX: str = "nfc_devices:"
DEFAULT_DB_PATH: str = "guidegate.sqlite"
DEFAULT_CODE_STRATEGY: str = "mixing"

CODE_WIDTH: int = 4
FINGERPRINT_MASK_CHARS: int = 8

DEFAULT_TAG_BASE_URL: str = "https://guide.example.com"
TAGS_CSV_NAME: str = "nfc-tags.csv"
TAGS_JSON_NAME: str = "nfc-tags.json"
LAST_NUMBER_FILE: str = "last-generated-number.txt"
