import configparser
import sys
from pathlib import Path


def get_base_dir():
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


def run_setup(config_file=None, ask=input):
    """Write tallyfront.ini from a few interactive answers. Returns the file path."""
    print("=" * 60)
    print("TallyFront - First Time Setup")
    print("=" * 60)

    config = configparser.ConfigParser()

    print("\n[BOOKS API]")
    base_url = ask("API Base URL [http://localhost:3000]: ").strip() or 'http://localhost:3000'
    token = ask("API Token (leave blank to set later): ").strip()
    timeout = ask("Request timeout in seconds [10]: ").strip() or '10'

    config['api'] = {
        'base_url': base_url,
        'token': token,
        'timeout': timeout,
    }

    print("\n[APPLICATION SETTINGS]")
    allow_over = ask("Allow paying more than a document's balance? [no]: ").strip().lower()

    config['app'] = {
        'secret_key': 'AUTO_GENERATED',
        'tax_rate_cache_seconds': '300',
        'check_customer_eligibility': 'True',
        'allow_overpayment': 'True' if allow_over in ('y', 'yes', 'true', '1') else 'False',
        'payment_state_seconds': '3600',
        'debug': 'False',
    }

    config['audit'] = {
        'database_url': '',
    }

    config_file = Path(config_file) if config_file else get_base_dir() / 'tallyfront.ini'
    with open(config_file, 'w') as f:
        config.write(f)

    print(f"\nConfiguration saved to {config_file}")
    return config_file


if __name__ == '__main__':
    run_setup()
