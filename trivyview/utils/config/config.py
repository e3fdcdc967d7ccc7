import aiohttp, base64, dotenv, io, json, logging, os, re

from ruamel.yaml import YAML
from typing import Any

from .encrypt import AbstractEncrypter, FernetEncrypter
from .log import LogConfig
from .http import HttpConfig

#-----------------------------------------------------------------------------

_global_config = None

DEFAULT_UPLOAD_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_LIST_LIMIT = 100

# YAML values under these keys are stored encrypted.
SECRET_KEY_PATTERN = re.compile(r"_KEY$|_SECRET|_TOKEN|_PASSWORD|CONNECTION_STRING")

#-----------------------------------------------------------------------------

def global_config() -> "Config | None":
    return _global_config

#-----------------------------------------------------------------------------

class Config:

    yaml = YAML()

    #-------------------------------------------------

    def __init__(
        self,
        yaml_filenames: str | io.StringIO | list[str | io.StringIO] | None = None,
        encrypter: AbstractEncrypter | None = None
    ):
        if isinstance(yaml_filenames, str | io.StringIO):
            self._yaml_filenames = [yaml_filenames]
        elif isinstance(yaml_filenames, list):
            self._yaml_filenames = yaml_filenames
        else:
            self._yaml_filenames = []

        self._raw = {}

        self._encrypter = encrypter
        if not self._encrypter:
            self._encrypter = FernetEncrypter(self.get_fernet_key("CONFIG_ENCRYPTION_KEY"))

        #-------------------------------------------------

        for yaml_filename in self._yaml_filenames:
            self.load_yaml(yaml_filename)

        self.refresh()

        global _global_config
        _global_config = self

    #-----------------------------------------------------

    def refresh(self, data: dict | None = None):
        if data:
            self._raw.update({k.upper(): v for k, v in data.items()})

        self.log = LogConfig(
            name    = self.get_str("LOG_NAME"),
            dir     = self.get_str("LOG_DIR"),
            level   = logging.getLevelNamesMapping().get(self.get_str("LOG_LEVEL").strip().upper(), logging.INFO)
        )

        self.http = HttpConfig(
            name        = self.get_str("HTTP_SERVER_NAME"),
            version     = self.get_str("HTTP_SERVER_VERSION"),
            host        = self.get_str("HTTP_HOST"),
            port        = self.get_int("HTTP_PORT"),
            uri_prefix  = self.get_str("HTTP_URI_PREFIX"),
            htdoc       = self.get_str("HTTP_ROOT"),
            headers     = self.get_dict("HTTP_HEADERS", {})
        )

        self.storage_location   = self.get_str("STORAGE_LOCATION").strip()
        self.storage_prefix     = self.get_str("STORAGE_PREFIX").strip()

        self.upload_max_bytes   = self.get_int("UPLOAD_MAX_BYTES", DEFAULT_UPLOAD_MAX_BYTES)
        if self.upload_max_bytes <= 0:
            self.upload_max_bytes = DEFAULT_UPLOAD_MAX_BYTES

        self.list_default_limit = self.get_int("LIST_DEFAULT_LIMIT", DEFAULT_LIST_LIMIT)
        if self.list_default_limit <= 0:
            self.list_default_limit = DEFAULT_LIST_LIMIT


    def load_yaml(self, file: str | io.StringIO):
        if not file:
            return

        if isinstance(file, str):
            try:
                with open(file, "r", encoding="utf-8") as f:
                    stream = io.StringIO(f.read())
            except OSError as e:
                logging.warning(f"Failed to load YAML file '{file}': {str(e)}")
                return
        else:
            # Content from StringIO (e.g., remote config).
            stream = file

        #-------------------------------------------------

        data = Config.yaml.load(stream)
        if not isinstance(data, dict):
            return

        modified = False

        for key, value in data.items():
            if not isinstance(key, str):
                continue

            upper_key = key.upper()

            if isinstance(value, str) and value and self._encrypter.enabled:
                if self._encrypter.is_encrypted(value):
                    self._raw[upper_key] = self._encrypter.decrypt(value)
                    continue

                if SECRET_KEY_PATTERN.search(upper_key) and upper_key != "CONFIG_ENCRYPTION_KEY":
                    data[key] = self._encrypter.encrypt(value)
                    modified = True

            self._raw[upper_key] = value

        #-------------------------------------------------
        # Write secrets back encrypted.

        if isinstance(file, str) and modified:
            try:
                with open(file, "w", encoding="utf-8") as f:
                    Config.yaml.dump(data, f)
            except OSError as e:
                logging.warning(f"Failed to update YAML file '{file}': {str(e)}")

    #-----------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        stripped_key = key.strip()
        if not stripped_key:
            return default

        # Environment variables win over config files.
        s = os.environ.get(stripped_key)
        if s is not None:
            return s

        upper_key = stripped_key.upper()
        s = os.environ.get(upper_key)
        if s is not None:
            return s

        return self._raw.get(upper_key, default)


    def get_str(self, key: str, default: str = "") -> str:
        obj = self.get(key, default)
        if obj is None:
            return default
        return obj if isinstance(obj, str) else str(obj)


    def get_int(self, key: str, default: int = 0) -> int:
        obj = self.get(key)

        if isinstance(obj, int) and not isinstance(obj, bool):
            return obj

        try:
            return int(obj)
        except (TypeError, ValueError):
            return default


    def get_bool(self, key: str, default: bool = False) -> bool:
        obj = self.get(key)

        if isinstance(obj, bool):
            return obj

        if isinstance(obj, str):
            return obj.strip().upper() in ("TRUE", "YES", "1")

        if isinstance(obj, int):
            return obj != 0

        return default


    def get_dict(self, key: str, default: dict | None = None) -> dict | None:
        obj = self.get(key)

        if isinstance(obj, dict):
            return dict(obj)

        if isinstance(obj, str | bytes | bytearray):
            try:
                d = json.loads(obj)
                if isinstance(d, dict):
                    return d
            except ValueError:
                return default

        return default


    def get_list(self, key: str, default: list | None = None) -> list | None:
        obj = self.get(key)

        if isinstance(obj, list):
            return list(obj)

        if isinstance(obj, str | bytes | bytearray):
            try:
                l = json.loads(obj)
                if isinstance(l, list):
                    return l
            except ValueError:
                return default

        return default


    def get_fernet_key(self, key: str) -> str:
        """
        Derive a Fernet key from a passphrase of up to 32 characters.

        Returns "" when the passphrase is not configured.
        """
        s = self.get_str(key).strip()
        if not s:
            return ""

        return base64.urlsafe_b64encode(s[:32].encode().ljust(32, b"0")).decode()

    #-----------------------------------------------------

    def get_storage_options(self) -> dict[str, str]:
        """Backend specific keyword arguments for create_storage_provider()"""
        return {
            "region"            : self.get_str("S3_REGION"),
            "endpoint"          : self.get_str("S3_ENDPOINT_URL"),
            "access_key_id"     : self.get_str("S3_ACCESS_KEY_ID"),
            "secret_access_key" : self.get_str("S3_SECRET_ACCESS_KEY"),
            "connection_string" : self.get_str("AZURE_STORAGE_CONNECTION_STRING"),
            "project"           : self.get_str("GCS_PROJECT")
        }

    #-----------------------------------------------------

    def print(self):
        print(f"Configuration loaded from {[f if isinstance(f, str) else '<remote>' for f in self._yaml_filenames]}:")
        print("----------------------------------------------------------")
        print(f"env             : {os.environ.get('ENV', '').strip().lower()}")
        print(f"debug           : {self.log.level <= logging.DEBUG}")

        self.log.print()
        self.http.print()

        print(f"storage         : {self.storage_location if self.storage_location else '(not set)'}")
        if self.storage_prefix:
            print(f"prefix          : {self.storage_prefix}")
        print(f"upload limit    : {self.upload_max_bytes} bytes")

        for key, value in self.get_storage_options().items():
            if not value:
                continue
            if key in ("secret_access_key", "connection_string"):
                value = Config.to_masked_str(value)
            print(f"{key:<16}: {value}")

        print("----------------------------------------------------------")

    #-------------------------------------------------------------------------

    @staticmethod
    def to_masked_str(s: str) -> str:
        n = len(s)
        if n <= 0:
            return ""
        if n < 10:
            return "************"
        return f"{s[:3]}******{s[n-3:]}"

    #-------------------------------------------------------------------------

    @staticmethod
    def load_dotenv(filenames: str | list[str] | None = None):
        if isinstance(filenames, str):
            l = [filenames]
        elif isinstance(filenames, list):
            l = filenames
        else:
            return

        for filename in l:
            filename = filename.strip()
            if not filename:
                continue

            for key, value in dotenv.dotenv_values(filename).items():
                key = key.strip() if key else ""
                value = value.strip() if value else ""
                if not key or not value:
                    continue

                os.environ.setdefault(key.upper(), value)

    #-------------------------------------------------------------------------

    @staticmethod
    async def load_remote_config(server: str, token: str, env: str) -> tuple[str | None, str | None]:
        """
        Fetch resolved YAML configuration from a config server.

        Returns:
            Tuple of (yaml_text, error_message)
        """
        if not server:
            return None, "Empty 'server'."

        if not token:
            return None, "Empty 'token'."

        if not env:
            return None, "Empty 'env'."

        try:
            async with aiohttp.ClientSession() as session:
                url = f"{server.rstrip('/')}/api/v1/config/environments/{env}/configs/resolved?is_yaml=true"

                async with session.get(url=url, headers={"X-Config-Token": token}) as resp:
                    resp_text = await resp.text()
                    if not resp.ok:
                        return None, f"{resp.status}: {resp_text}"
                    if not resp_text:
                        return None, "Empty HTTP response body."

                    return resp_text, None

        except aiohttp.ClientError as e:
            return None, str(e)

    #-------------------------------------------------------------------------

    @staticmethod
    def expand_yaml_filenames(yaml_filenames: str | list[str] | None, env: str = "") -> list[str]:
        """
        Add companion files for every YAML file given.

        "config.yaml" with ENV=prod expands to config.yaml, config.key.yaml,
        config.prod.yaml and config.prod.key.yaml, in that order.
        """
        if isinstance(yaml_filenames, str):
            names = [yaml_filenames]
        elif isinstance(yaml_filenames, list):
            names = yaml_filenames
        else:
            names = []

        stems = []
        for name in names:
            if not isinstance(name, str):
                continue
            name = name.strip()
            if not re.match(r".*\.yaml$", name, re.IGNORECASE):
                continue
            stem = re.sub(r"(\.key)?\.yaml$", "", name, flags=re.IGNORECASE)
            if stem not in stems:
                stems.append(stem)

        if not stems and env:
            stems = ["config"]

        results = []
        for stem in stems:
            candidates = [f"{stem}.yaml", f"{stem}.key.yaml"]
            if env:
                candidates += [f"{stem}.{env}.yaml", f"{stem}.{env}.key.yaml"]
            for candidate in candidates:
                if candidate not in results:
                    results.append(candidate)

        return results

    #-------------------------------------------------------------------------

    @staticmethod
    async def init(
        yaml_filenames  : str | list[str] | None = None,
        dotenv_filenames: str | list[str] | None = None,
        log_extra       : dict | None = None
    ) -> "Config":
        from ..log import init_log, init_log_console
        init_log_console(extra=log_extra)

        #-----------------------------------------------------

        class URLFilter(logging.Filter):
            def __init__(self, blocked_urls):
                super().__init__()
                self.blocked_urls = blocked_urls

            def filter(self, record: logging.LogRecord) -> bool:
                # uvicorn access log args: (client, method, path, http_version, status)
                if record.args and len(record.args) >= 3:
                    if record.args[2] in self.blocked_urls:
                        return False
                return True

        logging.getLogger("uvicorn.access").addFilter(URLFilter(["/api/health"]))

        #-----------------------------------------------------

        Config.load_dotenv(dotenv_filenames if dotenv_filenames is not None else [".env"])

        env = os.environ.get("ENV", "").strip().lower()

        yaml_file_list: list[str | io.StringIO] = []

        default_yaml = "config.yaml"
        expanded = Config.expand_yaml_filenames(yaml_filenames, env)
        if os.path.exists(default_yaml) and default_yaml not in expanded:
            yaml_file_list.append(default_yaml)

        yaml_file_list.extend(f for f in expanded if os.path.exists(f))

        remote_yaml, err = await Config.load_remote_config(
            server  = os.environ.get("CONFIG_SERVER", ""),
            token   = os.environ.get("CONFIG_TOKEN", ""),
            env     = env
        )
        if remote_yaml:
            yaml_file_list.append(io.StringIO(remote_yaml))
            logging.info("Remote config has been loaded.")
        elif os.environ.get("CONFIG_SERVER"):
            logging.warning(f"Failed to load remote config: {err}")

        #-----------------------------------------------------

        config = Config(yaml_filenames=yaml_file_list)

        extra = dict(log_extra) if log_extra else {}
        if env:
            extra["env"] = env

        init_log(
            name    = config.log.name,
            dir     = config.log.dir,
            level   = config.log.level,
            extra   = extra
        )

        return config

#-----------------------------------------------------------------------------
