"""Node configuration loader module.

Reads the node's own configuration file (evrmore.conf, bitcoin.conf, ...) for
the RPC credentials the sync engine needs. The file is a flat list of
``key=value`` lines; ``#`` comments and ``[network]`` section headers are
skipped, so for multi-network files the last value of a key wins.

Required settings:
    - server=1
    - rpcuser, rpcpassword
    - rpcport

Recommended:
    - txindex=1 (lets getrawtransaction resolve inputs the local store has not seen)
    - rpcbind (host to connect to, defaults to 127.0.0.1)
"""
from pathlib import Path
from typing import Any, Dict, Union
import logging

from .validation import ConfigValidationError, DISABLED, INVALID, MISSING

logger = logging.getLogger(__name__)

# Settings whose values are always kept as strings, even if they look numeric
STRING_SETTINGS = ('rpcuser', 'rpcpassword', 'rpcbind')

REQUIRED = {
    'rpcuser': str,
    'rpcpassword': str,
    'rpcport': int,
    'server': bool
}

class NodeConfigError(Exception):
    """Raised when there's an error loading the node configuration"""
    pass

def parse_value(value: str) -> Union[str, int, float, bool]:
    """Parse configuration values to appropriate types"""
    lowered = value.lower()
    if lowered in ('true', '1', 'yes', 'on'):
        return True
    if lowered in ('false', '0', 'no', 'off'):
        return False

    for number in (int, float):
        try:
            return number(value)
        except ValueError:
            continue
    return value

def parse_lines(text: str, filename: str = 'node.conf') -> Dict[str, Any]:
    """Parse key=value lines into typed settings."""
    config: Dict[str, Any] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(('#', '[')):
            continue
        key, sep, value = line.partition('=')
        if not sep:
            logger.warning(f"Skipping invalid line in {filename}: {line}")
            continue
        key, value = key.strip(), value.strip()
        config[key] = value if key in STRING_SETTINGS else parse_value(value)
    return config

def check_required(config: Dict[str, Any]) -> ConfigValidationError:
    errors = ConfigValidationError("Node Configuration Validation Failed")
    for key, expected in REQUIRED.items():
        if key not in config:
            errors.add(MISSING, key)
            continue
        value = config[key]
        # bool is a subclass of int, so rpcport=1 would otherwise pass
        wrong_type = not isinstance(value, expected) or (expected is int and isinstance(value, bool))
        if wrong_type:
            errors.add(INVALID, f"{key} (expected {expected.__name__})")
        elif expected is bool and not value:
            errors.add(DISABLED, key)
    return errors

def load_node_conf(node_root: str, filename: str = 'node.conf') -> Dict[str, Any]:
    """Load and validate the node configuration file

    Args:
        node_root: Path to the node configuration directory
        filename: Name of the configuration file inside node_root

    Returns:
        Dictionary containing parsed node settings

    Raises:
        NodeConfigError: If the file is missing, unreadable, or fails validation
    """
    config_path = Path(node_root) / filename

    if not config_path.exists():
        raise NodeConfigError(
            f"Node configuration file not found at: {config_path}\n"
            f"Please ensure {filename} exists in your node configuration directory"
        )

    try:
        config = parse_lines(config_path.read_text(), filename)
    except OSError as e:
        raise NodeConfigError(f"Error reading {filename}: {e}") from e

    errors = check_required(config)
    if errors.has_errors():
        raise NodeConfigError(errors.format_message())

    if not config.get('txindex'):
        logger.warning(
            "txindex is not enabled; inputs not found in the local store "
            "cannot be resolved through getrawtransaction"
        )

    return config
