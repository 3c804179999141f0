"""OpenSMTPD filter that tags mail from senders found in the recipient's address books.

Public API re-exported here for convenience::

    from filter_address_book import FilterHost, TransactionController, load_config
"""

__version__ = "0.2.0"

from .address import extract_address
from .config import DirectoryConfig, FilterConfig, RetryConfig, load_config
from .controller import TransactionController
from .directory_client import DirectoryClient
from .errors import (
    AddressNotFound,
    ConfigError,
    DecodeError,
    DirectoryError,
    DirectoryScanFailed,
    FilterError,
    ProtocolError,
    RemoteError,
    SessionTypeError,
    TransportError,
)
from .host import FilterHost
from .logging import setup_logging
from .session import LineKind, Session, TxState

__all__ = [
    "AddressNotFound",
    "ConfigError",
    "DecodeError",
    "DirectoryClient",
    "DirectoryConfig",
    "DirectoryError",
    "DirectoryScanFailed",
    "FilterConfig",
    "FilterError",
    "FilterHost",
    "LineKind",
    "ProtocolError",
    "RemoteError",
    "RetryConfig",
    "Session",
    "SessionTypeError",
    "TransactionController",
    "TransportError",
    "TxState",
    "__version__",
    "extract_address",
    "load_config",
    "setup_logging",
]
