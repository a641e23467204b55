import os
import configparser
from pathlib import Path
import sys


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    if getattr(sys, 'frozen', False):
        BASE_DIR = Path(sys.executable).parent
    else:
        BASE_DIR = Path(__file__).resolve().parent

    RESOURCE_DIR = Path(getattr(sys, '_MEIPASS', BASE_DIR))

    CONFIG_FILE_RUNTIME = BASE_DIR / 'tallyfront.ini'
    CONFIG_FILE_BUNDLED = RESOURCE_DIR / 'tallyfront.ini'

    @staticmethod
    def get_log_dir():
        """Get log directory with write permissions."""
        # 1. Check environment variable
        env_log = os.environ.get('TALLYFRONT_LOG_DIR')
        if env_log:
            log_dir = Path(env_log)
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
                return log_dir
            except OSError:
                pass

        # 2. User data directory
        try:
            if os.name == 'nt':
                base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
                log_dir = base / 'TallyFront' / 'logs'
            else:
                log_dir = Path.home() / '.local' / 'share' / 'tallyfront' / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            pass

        # 3. Fallback: BASE_DIR/logs
        try:
            log_dir = Config.BASE_DIR / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            import tempfile
            return Path(tempfile.gettempdir()) / 'tallyfront_logs'

    @staticmethod
    def _user_secret_path():
        try:
            if os.name == 'nt':
                base = Path(os.environ.get('APPDATA', str(Path.home() / 'AppData' / 'Roaming')))
                return base / 'tallyfront' / '.secret_key'
            else:
                return Path.home() / '.tallyfront' / '.secret_key'
        except Exception:
            return Path.home() / '.secret_key'

    SECRET_FILE = BASE_DIR / '.secret_key'
    USER_SECRET_FILE = _user_secret_path.__func__()

    config_parser = configparser.ConfigParser()
    if CONFIG_FILE_RUNTIME.exists():
        config_parser.read(CONFIG_FILE_RUNTIME)
    elif CONFIG_FILE_BUNDLED.exists():
        config_parser.read(CONFIG_FILE_BUNDLED)

    if config_parser.sections():
        API_BASE_URL = config_parser.get('api', 'base_url', fallback='http://localhost:3000')
        API_TOKEN = config_parser.get('api', 'token', fallback='') or None
        API_TIMEOUT = config_parser.getfloat('api', 'timeout', fallback=10.0)
        TAX_RATE_CACHE_SECONDS = config_parser.getint('app', 'tax_rate_cache_seconds', fallback=300)
        CHECK_CUSTOMER_ELIGIBILITY = config_parser.getboolean('app', 'check_customer_eligibility', fallback=True)
        ALLOW_OVERPAYMENT = config_parser.getboolean('app', 'allow_overpayment', fallback=False)
        PAYMENT_STATE_SECONDS = config_parser.getint('app', 'payment_state_seconds', fallback=3600)
        SQLALCHEMY_DATABASE_URI = config_parser.get('audit', 'database_url', fallback='')
        DEBUG = config_parser.getboolean('app', 'debug', fallback=False)
    else:
        API_BASE_URL = os.environ.get('API_BASE_URL', 'http://localhost:3000')
        API_TOKEN = os.environ.get('API_TOKEN') or None
        API_TIMEOUT = float(os.environ.get('API_TIMEOUT', 10))
        TAX_RATE_CACHE_SECONDS = int(os.environ.get('TAX_RATE_CACHE_SECONDS', 300))
        CHECK_CUSTOMER_ELIGIBILITY = _as_bool(os.environ.get('CHECK_CUSTOMER_ELIGIBILITY'), True)
        ALLOW_OVERPAYMENT = _as_bool(os.environ.get('ALLOW_OVERPAYMENT'), False)
        PAYMENT_STATE_SECONDS = int(os.environ.get('PAYMENT_STATE_SECONDS', 3600))
        SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')
        DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'

    if not SQLALCHEMY_DATABASE_URI:
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{BASE_DIR / "audit.db"}'

    SECRET_KEY = None
    if config_parser.sections():
        SECRET_KEY = config_parser.get('app', 'secret_key', fallback=None)
        if SECRET_KEY == 'AUTO_GENERATED':
            SECRET_KEY = None

    if not SECRET_KEY:
        try:
            if SECRET_FILE.exists():
                SECRET_KEY = SECRET_FILE.read_text().strip()
            else:
                if not USER_SECRET_FILE.parent.exists():
                    USER_SECRET_FILE.parent.mkdir(parents=True, exist_ok=True)
                if USER_SECRET_FILE.exists():
                    SECRET_KEY = USER_SECRET_FILE.read_text().strip()
                else:
                    SECRET_KEY = os.urandom(32).hex()
                    USER_SECRET_FILE.write_text(SECRET_KEY)
                    try:
                        os.chmod(USER_SECRET_FILE, 0o600)
                    except OSError:
                        pass
        except OSError:
            SECRET_KEY = os.urandom(32).hex()

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = TAX_RATE_CACHE_SECONDS
    # tax rates plus one in-progress payment/refund per open screen
    CACHE_THRESHOLD = 2000

    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = 3600


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SECRET_KEY = 'testing'
    API_BASE_URL = 'http://books.test'
    API_TOKEN = None
    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = 300
    CHECK_CUSTOMER_ELIGIBILITY = True
    ALLOW_OVERPAYMENT = False
