import logging

from cryptography.fernet import Fernet, InvalidToken

#-----------------------------------------------------------------------------

class AbstractEncrypter:
    def decrypt(self, s: str) -> str: ...
    def encrypt(self, s: str) -> str: ...
    def is_encrypted(self, s: str) -> bool: ...

#-----------------------------------------------------------------------------

class FernetEncrypter(AbstractEncrypter):
    """Encrypts secrets stored in YAML config files, e.g. S3_SECRET_ACCESS_KEY"""

    def __init__(self, key: str):
        self._fernet = None

        key = key.strip() if key else ""
        if not key:
            return

        try:
            self._fernet = Fernet(key)
        except ValueError as e:
            logging.error(f"Invalid config encryption key: {str(e)}")

    #-----------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def decrypt(self, s: str) -> str:
        if not s or not self._fernet or not self.is_encrypted(s):
            return s

        try:
            return self._fernet.decrypt(s.encode()).decode()
        except InvalidToken:
            logging.error("Failed to decrypt config value, wrong CONFIG_ENCRYPTION_KEY?")
            return s

    def encrypt(self, s: str) -> str:
        if not s or not self._fernet:
            return s
        return self._fernet.encrypt(s.encode()).decode()

    def is_encrypted(self, s: str) -> bool:
        # Fernet tokens always start with version byte 0x80, base64 "gAAAAA".
        return s.startswith("gAAAA")

#-----------------------------------------------------------------------------
