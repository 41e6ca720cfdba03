"""Settings configuration loader module.

settings.conf is an INI file with a single [DEFAULT] section:

    [DEFAULT]
    node_root = /home/user/.evrmore/
    node_conf = evrmore.conf
    db_url = postgresql://root@localhost:26257/ledger?sslmode=disable
    chain_id = evrmore

Required settings:
    node_root: Directory holding the node configuration file
    db_url: Database connection URL

Optional settings (see DEFAULTS):
    node_conf: Node configuration file name inside node_root
    chain_id: Identifier keying the sync checkpoint and commit markers
    coin_units: Decimal places of the chain's native asset
    show_op_return: Decode OP_RETURN payloads into transaction records
    show_algo: Record the block's mining algorithm on transactions
    algo_key: Block field holding the mining algorithm
    sync_lookback: Heights before a range start that must already be ingested
    rpc_timeout: Seconds before a node call is abandoned
    store_timeout: Seconds before a database call is abandoned
"""
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Any, Callable, Dict, Tuple
import os

from .validation import BAD_PATHS, ConfigValidationError, MISSING, NO_SECTION

class SettingsError(Exception):
    """Raised when there are issues loading or parsing the settings configuration."""
    pass

REQUIRED_SETTINGS = ('node_root', 'db_url')

# Default settings
DEFAULTS = {
    'node_root': os.path.expanduser('~/.evrmore'),
    'node_conf': 'node.conf',
    'db_url': 'postgresql://root@localhost:26257/defaultdb?sslmode=disable',
    'chain_id': 'main',
    'coin_units': '8',
    'show_op_return': 'false',
    'show_algo': 'false',
    'algo_key': 'pow_algo',
    'sync_lookback': '1',
    'rpc_timeout': '30',
    'store_timeout': '60'
}

BOOLEAN_SETTINGS = ('show_op_return', 'show_algo')

def parse_bool(value: Any) -> bool:
    """Parse an INI-style boolean"""
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in ('true', '1', 'yes', 'on'):
        return True
    if lowered in ('false', '0', 'no', 'off'):
        return False
    raise ValueError(f"not a boolean: {value}")

# key -> (converter, check, message when the check fails)
TYPED_SETTINGS: Dict[str, Tuple[Callable[[Any], Any], Callable[[Any], bool], str]] = {
    'coin_units': (int, lambda v: 0 <= v <= 18, "coin_units must be between 0 and 18"),
    'sync_lookback': (int, lambda v: v >= 0, "sync_lookback must not be negative"),
    'rpc_timeout': (float, lambda v: v > 0, "rpc_timeout must be positive"),
    'store_timeout': (float, lambda v: v > 0, "store_timeout must be positive"),
    'chain_id': (str, bool, "chain_id must not be empty"),
}

def load_settings_conf(settings_path: str = ".") -> Dict[str, Any]:
    """Load settings.conf from settings_path, fill defaults and validate.

    Raises:
        SettingsError: If the file is missing, unparsable, or invalid
    """
    config_path = Path(settings_path) / 'settings.conf'

    if not config_path.exists():
        raise SettingsError(
            f"Settings file not found at: {config_path}\n"
            "Please create settings.conf with a [DEFAULT] section"
        )

    parser = ConfigParser()
    try:
        parser.read(config_path)
    except ConfigParserError as e:
        raise SettingsError(f"Error parsing settings.conf: {e}") from e

    errors = ConfigValidationError("Settings Configuration Validation Failed")
    settings = dict(parser.defaults())

    # configparser always has DEFAULT, so an empty one means the section is absent
    if not settings:
        errors.add(NO_SECTION, '[DEFAULT]')

    for key in REQUIRED_SETTINGS:
        if settings and key not in settings:
            errors.add(MISSING, key)

    if 'node_root' in settings:
        node_root = Path(settings['node_root']).expanduser().resolve()
        if node_root.is_dir():
            settings['node_root'] = str(node_root)
        else:
            errors.add(BAD_PATHS, f"node_root: {node_root}")

    if errors.has_errors():
        raise SettingsError(errors.format_message())

    return validate_settings({**DEFAULTS, **settings})

def validate_settings(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Convert typed settings in place and check their ranges.

    Raises:
        SettingsError: If a value cannot be converted or is out of range
    """
    try:
        for key, (convert, check, message) in TYPED_SETTINGS.items():
            settings[key] = convert(settings[key])
            if not check(settings[key]):
                raise ValueError(message)

        for key in BOOLEAN_SETTINGS:
            settings[key] = parse_bool(settings[key])

    except (ValueError, KeyError) as e:
        raise SettingsError(f"Invalid settings configuration: {e}") from e

    return settings
