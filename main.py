import json
import sys

from config import load_config, resolve_data_dir, validate_config
from menus.account_menu import account_menu
from spotify_library import SessionManager
from utils.logger import setup_logging, log_info, log_error


def run() -> int:
    try:
        config = load_config()
    except json.JSONDecodeError as e:
        setup_logging()
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except (OSError, ValueError) as e:
        setup_logging()
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_level", "INFO"), config.get("log_file") or None)

    is_valid, errors = validate_config(config)
    if not is_valid:
        for err in errors:
            log_error(err)
        return 1

    # One session for the whole process; every menu works against it.
    session = SessionManager.from_config(config, resolve_data_dir(config))

    try:
        account_menu(session, config)
    except KeyboardInterrupt:
        pass

    log_info("Exiting program...")
    return 0


if __name__ == "__main__":
    sys.exit(run())
