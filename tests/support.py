#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import io
import sys

from mapfront.config import Config
from mapfront.gateway import Gateway, GatewayResponse

WORLD = {
    "name": "world",
    "projections": ["3857"],
    "aliases": {"3857": ["900913"]},
}


def make_environ(path="/world/", query="", method="GET", **extra):
    environ = {
        "REQUEST_METHOD": method,
        "SCRIPT_NAME": "",
        "PATH_INFO": path,
        "QUERY_STRING": query,
        "SERVER_NAME": "localhost",
        "SERVER_PORT": "8000",
        "SERVER_PROTOCOL": "HTTP/1.1",
        "REMOTE_ADDR": "127.0.0.1",
        "REMOTE_PORT": "54321",
        "wsgi.input": io.BytesIO(),
        "wsgi.errors": sys.stderr,
        "wsgi.url_scheme": "http",
    }
    environ.update(extra)
    return environ


def make_config(maps=None, **settings):
    cfg = Config()
    cfg.set("maps", [WORLD] if maps is None else maps)
    for key, value in settings.items():
        cfg.set(key, value)
    return cfg


class FakeGateway(Gateway):

    def __init__(self, response=None):
        super().__init__(log=None)
        self.calls = []
        if response is None:
            response = GatewayResponse("200 OK", [("Content-Type", "image/png")],
                                       [b"PNG", b"DATA"])
        self.response = response

    def invoke(self, contract, environ):
        self.calls.append((contract, environ))
        return self.response


class StartResponse(object):

    def __init__(self):
        self.status = None
        self.headers = None

    def __call__(self, status, headers, exc_info=None):
        self.status = status
        self.headers = headers

    def header(self, name):
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None


def call_app(app, environ):
    start_response = StartResponse()
    result = app(environ, start_response)
    try:
        body = b"".join(result)
    finally:
        if hasattr(result, "close"):
            result.close()
    return start_response, body


def access_records(caplog):
    return [r.getMessage() for r in caplog.records if r.name == "mapfront.access"]
