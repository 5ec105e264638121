import json
import os
from typing import Any, Dict

CONFIG_PATH = os.environ.get("SPOTIFY_LIBRARY_CONFIG", "config.json")

# Default configuration values
DEFAULT_CONFIG = {
    # Application-private directory: token file + credential override files
    "data_dir": os.path.join("~", ".spotify-library-sync"),
    "export_dir": "exports",

    # Spotify Web API (OAuth PKCE via loopback callback)
    # NOTE: client id / secret may also come from SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET
    # or from the override files written by the account menu.
    "spotify_client_id": "",
    "spotify_client_secret": "",
    "spotify_callback_host": "127.0.0.1",
    "spotify_callback_port": 3000,
    "spotify_scopes": [
        "user-library-read",
        "playlist-read-private",
        "playlist-read-collaborative",
    ],
    "spotify_show_dialog": True,
    "spotify_request_timeout": 30,
    "login_timeout": 120,

    # Library fetching
    "page_worker_count": 8,
    "show_progress": True,

    # Logging
    "log_level": "INFO",
    "log_file": "",
}

# Validation rules for config fields
CONFIG_SCHEMA = {
    "data_dir": {"type": str, "required": True},
    "export_dir": {"type": str, "required": False},

    "spotify_client_id": {"type": str, "required": False},
    "spotify_client_secret": {"type": str, "required": False},
    "spotify_callback_host": {"type": str, "required": False, "choices": ["127.0.0.1", "localhost"]},
    "spotify_callback_port": {"type": int, "required": False, "min": 0, "max": 65535},
    "spotify_scopes": {"type": list, "required": False, "element_type": str},
    "spotify_show_dialog": {"type": bool, "required": False},
    "spotify_request_timeout": {"type": (int, float), "required": False, "min": 1, "max": 300},
    "login_timeout": {"type": (int, float), "required": False, "min": 10, "max": 3600},

    "page_worker_count": {"type": int, "required": False, "min": 1, "max": 32},
    "show_progress": {"type": bool, "required": False},

    "log_level": {"type": str, "required": False, "choices": ["DEBUG", "INFO", "WARNING", "ERROR"]},
    "log_file": {"type": str, "required": False},
}


def load_config(path: str = None) -> Dict[str, Any]:
    """Load configuration from file, applying defaults for missing fields.

    A missing config file is not an error: the defaults are returned.
    """
    path = path or CONFIG_PATH
    config: Dict[str, Any] = {}
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
        if not isinstance(config, dict):
            raise ValueError(f"Config file {path} must contain a JSON object.")

    # Apply defaults for missing fields
    for key, value in DEFAULT_CONFIG.items():
        if key not in config:
            config[key] = list(value) if isinstance(value, list) else value

    return config


def save_config(config: Dict[str, Any], path: str = None) -> bool:
    """Save configuration to file."""
    path = path or CONFIG_PATH
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except OSError as e:
        raise IOError(f"Failed to save config: {e}")


def validate_config(config: Dict[str, Any]) -> tuple[bool, list[str]]:
    """
    Validate configuration against schema.
    Returns (is_valid, list_of_errors).
    """
    errors = []

    for key, rules in CONFIG_SCHEMA.items():
        # Check required fields
        if rules.get("required", False) and key not in config:
            errors.append(f"Missing required field: {key}")
            continue

        if key not in config:
            continue

        value = config[key]

        # bool is an int subclass; don't let True pass as a port number
        expected_type = rules.get("type")
        if isinstance(value, bool) and expected_type is not bool:
            errors.append(f"Field '{key}' must not be a boolean")
            continue

        # Type check
        if expected_type and not isinstance(value, expected_type):
            type_names = expected_type.__name__ if not isinstance(expected_type, tuple) else "/".join(t.__name__ for t in expected_type)
            errors.append(f"Field '{key}' must be {type_names}, got {type(value).__name__}")
            continue

        # List element type check (when schema uses: {"type": list, "element_type": ...})
        if isinstance(value, list) and "element_type" in rules:
            elem_type = rules["element_type"]
            bad_elems = [v for v in value if not isinstance(v, elem_type)]
            if bad_elems:
                errors.append(
                    f"Field '{key}' must be a list of {elem_type.__name__}, got invalid elements: {bad_elems}"
                )
                continue

        # Choices check
        if "choices" in rules and value not in rules["choices"]:
            errors.append(f"Field '{key}' must be one of {rules['choices']}, got '{value}'")

        # Range check for numeric values
        if isinstance(value, (int, float)):
            if "min" in rules and value < rules["min"]:
                errors.append(f"Field '{key}' must be >= {rules['min']}, got {value}")
            if "max" in rules and value > rules["max"]:
                errors.append(f"Field '{key}' must be <= {rules['max']}, got {value}")

    return len(errors) == 0, errors


def update_config(key: str, value: Any, path: str = None) -> tuple[bool, str]:
    """
    Update a single config field with validation.
    Returns (success, message).
    """
    config = load_config(path)

    # Check if key is valid
    if key not in CONFIG_SCHEMA:
        return False, f"Unknown config key: {key}"

    # Create temporary config with new value
    test_config = config.copy()
    test_config[key] = value

    # Validate the change
    is_valid, errors = validate_config(test_config)
    if not is_valid:
        return False, f"Validation failed: {', '.join(errors)}"

    # Save the updated config
    config[key] = value
    save_config(config, path)

    return True, f"Updated '{key}' to '{value}'"


def reset_to_defaults(path: str = None) -> tuple[bool, str]:
    """Reset configuration to default values."""
    try:
        save_config(dict(DEFAULT_CONFIG), path)
        return True, "Configuration reset to defaults"
    except IOError as e:
        return False, f"Failed to reset config: {e}"


def get_config_value(key: str, default: Any = None, path: str = None) -> Any:
    """Get a single config value with optional default."""
    try:
        config = load_config(path)
    except (OSError, ValueError):
        return default
    return config.get(key, default)


def resolve_data_dir(config: Dict[str, Any]) -> str:
    """Absolute path of the application-private data directory."""
    raw = str(config.get("data_dir") or DEFAULT_CONFIG["data_dir"])
    return os.path.abspath(os.path.expanduser(raw))
