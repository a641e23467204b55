import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import Config
from app import create_app


def configure_logging(log_dir=None):
    """Rotating file log plus console, level from LOGLEVEL. Returns the log file path."""
    log_dir = Path(log_dir) if log_dir else Config.get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"WARNING: Could not create log directory {log_dir}: {e}")
        import tempfile
        log_dir = Path(tempfile.gettempdir())

    logfile = log_dir / 'tallyfront.log'

    file_handler = RotatingFileHandler(
        logfile,
        maxBytes=10*1024*1024,  # 10 MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)

    logging.basicConfig(
        level=os.environ.get('LOGLEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=[file_handler, console_handler]
    )
    return logfile


def main():
    logfile = configure_logging()
    logging.info(f"Logging to: {logfile}")
    logging.info(f"Running from: {Config.BASE_DIR}")
    logging.info(f"Books API: {Config.API_BASE_URL}")

    try:
        app = create_app()
    except Exception as e:
        logging.exception(f"Failed to start: {e}")
        logging.error("Please check your configuration in tallyfront.ini")
        sys.exit(1)

    host_bind = os.environ.get('FLASK_HOST', '127.0.0.1')
    port = int(os.environ.get('FLASK_PORT', '5000'))

    # Prefer Waitress for production serving
    use_waitress = os.environ.get('USE_WAITRESS', '1') not in ('0', 'false', 'False')
    if use_waitress:
        from waitress import serve
        threads = int(os.environ.get('WAITRESS_THREADS', '8'))
        logging.info(f"Starting TallyFront at http://{host_bind}:{port}/ (Waitress, threads={threads})")
        serve(app, host=host_bind, port=port, threads=threads)
    else:
        debug = getattr(Config, 'DEBUG', False)
        logging.info(f"Starting TallyFront at http://{host_bind}:{port}/ (Flask dev server)")
        app.run(host=host_bind, port=port, debug=debug, use_reloader=False)


if __name__ == '__main__':
    main()
