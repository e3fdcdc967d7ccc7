from .config import Config, global_config
from .encrypt import AbstractEncrypter, FernetEncrypter
from .http import HttpConfig
from .log import LogConfig

__all__ = [
    "Config",
    "global_config",

    "AbstractEncrypter",
    "FernetEncrypter",

    "HttpConfig",
    "LogConfig",
]
