import os

#-----------------------------------------------------------------------------

class HttpConfig:
    def __init__(
        self,
        name        : str = "",
        version     : str = "",
        host        : str = "",
        port        : int = 0,
        uri_prefix  : str = "",
        htdoc       : str = "",
        headers     : dict[str, str] | None = None
    ):
        self.name   = name if name else "trivyview"
        self.version = version

        self.host   = host if host else "0.0.0.0"
        self.port   = port if port > 0 else 3000

        stripped_uri_prefix = uri_prefix.strip().strip("/")
        self.uri_prefix = f"/{stripped_uri_prefix}" if stripped_uri_prefix else ""

        # Static web root is optional; a missing directory disables it.
        self.htdoc = htdoc.strip() if htdoc else ""
        if self.htdoc and not os.path.isdir(self.htdoc):
            self.htdoc = ""

        #-------------------------------------------------

        self.headers = []
        has_server_header = False

        for key, value in (headers or {}).items():
            if not key or not value:
                continue

            self.headers.append((key, str(value)))

            if key.lower() == "server":
                has_server_header = True

        if not has_server_header:
            self.headers.append(("Server", f"{self.name}/{version}" if version else self.name))

    #-----------------------------------------------------

    def print(self):
        print(f"http            : {self.host}:{self.port}{self.uri_prefix}")
        print(f"                : {self.htdoc if self.htdoc else 'Static files are disabled.'}")
        for header in self.headers:
            print(f"                   {header[0]}: {header[1]}")

#-----------------------------------------------------------------------------
