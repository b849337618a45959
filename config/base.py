# config.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=0):
    """Parse an integer setting, falling back to ``default`` when unusable."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < minimum:
        return default
    return number


def _decode_private_key(value):
    """Private keys pasted into env vars carry literal ``\\n`` sequences."""
    if not value:
        return value
    return value.replace("\\n", "\n")


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _config_dir = os.path.dirname(os.path.abspath(__file__))

    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-in-production")

    # Store credentials for the CLI (service-account key file)
    SERVICE_ACCOUNT_PATH = os.environ.get("SERVICE_ACCOUNT_PATH", "./serviceAccountKey.json")
    SERVICE_ACCOUNT_FALLBACK_PATH = "/app/secrets/serviceAccountKey.json"

    # Store credentials for the HTTP adapters: one JSON blob or three discrete fields
    FIREBASE_SERVICE_ACCOUNT = os.environ.get("FIREBASE_SERVICE_ACCOUNT")
    FIREBASE_PROJECT_ID = os.environ.get("FIREBASE_PROJECT_ID")
    FIREBASE_CLIENT_EMAIL = os.environ.get("FIREBASE_CLIENT_EMAIL")
    FIREBASE_PRIVATE_KEY = _decode_private_key(os.environ.get("FIREBASE_PRIVATE_KEY"))

    # Spreadsheet import
    EXCEL_FILE_PATH = os.environ.get("EXCEL_FILE_PATH", "dataprocessing/Registrations_12_13.xlsx")

    # Organization-specific lookup tables
    BACKOFFICE_TABLES_PATH = os.environ.get(
        "BACKOFFICE_TABLES_PATH",
        os.path.join(_config_dir, "mappings", "registration_tables_v1.yaml"),
    )

    # Collections
    REGISTRATIONS_COLLECTION = os.environ.get("REGISTRATIONS_COLLECTION", "registrations")
    EMAIL_INDEX_COLLECTION = os.environ.get("EMAIL_INDEX_COLLECTION", "emailToUids")
    USERS_COLLECTION = os.environ.get("USERS_COLLECTION", "users")
    NON_SHIBIRARTHI_COLLECTION = os.environ.get("NON_SHIBIRARTHI_COLLECTION", "nonShibirarthiUsers")
    CANCELLED_COLLECTION = os.environ.get("CANCELLED_COLLECTION", "cancelledRegistrations")

    # Batch mutation driver pacing
    BATCH_GROUP_SIZE = _coerce_int(os.environ.get("BATCH_GROUP_SIZE"), 10, minimum=1)
    BATCH_DELAY_MS = _coerce_int(os.environ.get("BATCH_DELAY_MS"), 500)
    SCAN_PAGE_SIZE = _coerce_int(os.environ.get("SCAN_PAGE_SIZE"), 3000, minimum=1)
    MIGRATION_FLUSH_SIZE = _coerce_int(os.environ.get("MIGRATION_FLUSH_SIZE"), 500, minimum=1)

    # Contact-form relay
    SMTP_HOST = os.environ.get("SMTP_HOST")
    SMTP_PORT = _coerce_int(os.environ.get("SMTP_PORT"), 587, minimum=1)
    SMTP_USER = os.environ.get("SMTP_USER")
    SMTP_PASS = os.environ.get("SMTP_PASS")
    TO_EMAIL = os.environ.get("TO_EMAIL", "info@vss2025.org")
    SMTP_TIMEOUT_SECONDS = _coerce_int(os.environ.get("SMTP_TIMEOUT_SECONDS"), 30, minimum=1)

    # Batch account creation
    DEFAULT_ACCOUNT_PASSWORD = os.environ.get("DEFAULT_ACCOUNT_PASSWORD", "Vss@2025")

    DRY_RUN = _coerce_bool(os.environ.get("BACKOFFICE_DRY_RUN"), default=False)


class DevelopmentConfig(Config):
    DEBUG = True


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key-for-testing-only"
    BATCH_DELAY_MS = 0
    SMTP_HOST = None
    SMTP_USER = None
    SMTP_PASS = None


class ProductionConfig(Config):
    DEBUG = False


CONFIG_BY_ENV = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config_class(flask_env=None):
    """Return the settings class for ``flask_env`` (defaults to FLASK_ENV)."""
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")
    return CONFIG_BY_ENV.get(flask_env, DevelopmentConfig)
