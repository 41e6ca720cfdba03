"""Configuration module for loading and managing application settings"""
from typing import Dict, Any, Optional
from .lib.load_node_conf import load_node_conf, NodeConfigError
from .lib.load_settings_conf import load_settings_conf, validate_settings, SettingsError, DEFAULTS

__all__ = [
    'get_settings',
    'get_node_conf',
    'load_settings_conf',
    'load_node_conf',
    'validate_settings',
    'DEFAULTS',
    'SettingsError',
    'NodeConfigError'
]

_settings_conf: Optional[Dict[str, Any]] = None
_node_conf: Optional[Dict[str, Any]] = None

def _with_context(e: Exception) -> Exception:
    """Wrap a configuration error with a pointer to both files"""
    return type(e)(
        f"Configuration Error\n"
        "=================\n\n"
        f"{str(e)}\n\n"
        "Please ensure both settings.conf and the node configuration file are properly configured."
    )

def get_settings(settings_path: str = ".") -> Dict[str, Any]:
    """Return application settings, loading settings.conf on first use.

    Raises:
        SettingsError: If settings.conf is missing or invalid
    """
    global _settings_conf

    if _settings_conf is None:
        try:
            _settings_conf = load_settings_conf(settings_path)
        except SettingsError as e:
            raise _with_context(e) from e
    return _settings_conf

def get_node_conf() -> Dict[str, Any]:
    """Return node RPC settings, using node_root from settings.conf.

    Raises:
        SettingsError: If settings.conf is missing or invalid
        NodeConfigError: If the node configuration file is missing or invalid
    """
    global _node_conf

    if _node_conf is None:
        settings = get_settings()
        try:
            _node_conf = load_node_conf(settings['node_root'], settings['node_conf'])
        except NodeConfigError as e:
            raise _with_context(e) from e
    return _node_conf

def reset() -> None:
    """Forget cached configuration so the next access reloads it."""
    global _settings_conf, _node_conf
    _settings_conf = None
    _node_conf = None
