import datetime, json, logging, os

from .req_ctx import get_req_ctx

#-----------------------------------------------------------------------------

class JsonEncoder(json.JSONEncoder):
    def default(self, o):
        if isinstance(o, datetime.datetime | datetime.date):
            return o.isoformat()

        if isinstance(o, bytes | bytearray):
            return o.decode("utf-8", errors="replace")

        if isinstance(o, set | frozenset):
            return list(o)

        if isinstance(o, BaseException):
            return f"{o.__class__.__name__}: {o}"

        return str(o)

#-----------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """One JSON object per line; request context fields are added when present"""

    # Attributes every LogRecord has; anything else came in through extra=.
    _predefined_fields = frozenset((
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "color_message"
    ))

    def __init__(self, extra: dict | None = None):
        super().__init__()
        self._extra = extra

    #-----------------------------------------------------

    def format(self, record: logging.LogRecord) -> str:
        json_record = {
            "time"  : self.formatTime(record, self.datefmt),
            "level" : record.levelname,
            "msg"   : record.getMessage()
        }

        if record.exc_info:
            json_record["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            json_record["stack_info"] = record.stack_info

        #-------------------------------------------------

        if record.funcName and record.funcName != "<module>":
            json_record["function"] = record.funcName

        if record.pathname:
            filename = record.pathname.removeprefix(os.getcwd()).removeprefix(os.sep)
            json_record["file"] = f"{filename}:{record.lineno}"

        if record.module:
            json_record["module"] = record.module

        #-------------------------------------------------

        for k, v in record.__dict__.items():
            if k not in self._predefined_fields:
                json_record[k] = v

        if self._extra:
            json_record.update(self._extra)

        for field, ctx_key in (("trace_id", "trace_id"), ("url", "path"), ("method", "method")):
            if field not in json_record:
                value = get_req_ctx(ctx_key)
                if value:
                    json_record[field] = value

        return json.dumps(json_record, ensure_ascii=False, separators=(",", ":"), cls=JsonEncoder)

#-----------------------------------------------------------------------------

def init_log_console(level: int = logging.INFO, extra: dict | None = None):
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(JsonFormatter(extra))

    logging.root.handlers = [stream_handler]
    logging.root.setLevel(level=level)

#-----------------------------------------------------------------------------

def init_log_file(name: str, dir: str, level: int = logging.INFO, extra: dict | None = None):
    if dir:
        os.makedirs(dir, exist_ok=True)

    formatter = JsonFormatter(extra)

    now = datetime.datetime.now()
    file_handler = logging.FileHandler(
        os.path.join(dir, f"{now.strftime('%Y-%m-%d')}_{name}_{now.strftime('%H%M%S')}.log"),
        mode="a",
        encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)

    logging.root.handlers = [file_handler, stream_handler]
    logging.root.setLevel(level=level)

#-----------------------------------------------------------------------------

def init_log(name: str = "", dir: str = "", level: int = logging.INFO, extra: dict | None = None):
    """Log to a dated file under dir (plus console) when name is set, else console only"""
    if name:
        init_log_file(name, dir, level, extra)
    else:
        init_log_console(level, extra)

#-----------------------------------------------------------------------------
