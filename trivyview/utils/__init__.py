from .config import (
    Config,

    global_config
)

from .log import (
    init_log_console,
    init_log_file,

    init_log
)

from .http import (
    get_client_ip,

    json_response,
    error_response,
    get_error_status,
    storage_error_response
)

from .req_ctx import (
    REQ_CTX,

    get_req_ctx,
    update_req_ctx,
    set_req_ctx
)
