"""deslack configuration module"""

from .base import DeslackSettings, ServerConfig, TransportConfig
from .logging import configure_logging, log_error

__all__ = ['DeslackSettings', 'ServerConfig', 'TransportConfig', 'configure_logging', 'log_error']
