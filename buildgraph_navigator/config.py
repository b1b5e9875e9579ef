"""
Configuration - Settings from .env files, the environment and explicit overrides
"""
import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off')

@dataclass
class NavigatorConfig:
    """Runtime settings for BuildGraph Navigator"""
    encoding: str = 'utf-8'
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    workspace_dir: str = '.'
    warn_on_missing_include: bool = True

def _parse_bool(setting: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(setting, f"expected a boolean, got '{value}'")

def _parse_log_level(setting: str, value: str) -> str:
    level = value.strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ConfigurationError(setting, f"unknown log level '{value}'")
    return level

def load_config(env_file: Optional[str] = None, **overrides) -> NavigatorConfig:
    """Build a NavigatorConfig.

    Precedence, highest first: keyword overrides, process environment,
    values from env_file (or a .env found from the working directory).
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    config = NavigatorConfig(workspace_dir=os.getcwd())

    if os.getenv('BUILDGRAPH_ENCODING'):
        config.encoding = os.environ['BUILDGRAPH_ENCODING']
    if os.getenv('BUILDGRAPH_LOG_LEVEL'):
        config.log_level = _parse_log_level('BUILDGRAPH_LOG_LEVEL', os.environ['BUILDGRAPH_LOG_LEVEL'])
    if os.getenv('BUILDGRAPH_LOG_FILE'):
        config.log_file = os.environ['BUILDGRAPH_LOG_FILE']
    if os.getenv('BUILDGRAPH_WORKSPACE'):
        config.workspace_dir = os.environ['BUILDGRAPH_WORKSPACE']
    if os.getenv('BUILDGRAPH_WARN_MISSING_INCLUDE'):
        config.warn_on_missing_include = _parse_bool(
            'BUILDGRAPH_WARN_MISSING_INCLUDE', os.environ['BUILDGRAPH_WARN_MISSING_INCLUDE'])

    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise ConfigurationError(key, "unknown setting")
        if key == 'log_level':
            value = _parse_log_level(key, value)
        setattr(config, key, value)

    return config

def setup_logging(config: NavigatorConfig, verbose: bool = False):
    """Configure root logging the way the command line tools expect"""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format='%(asctime)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=getattr(logging, config.log_level),
                            format='%(levelname)s - %(message)s')

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logging.getLogger().addHandler(file_handler)
