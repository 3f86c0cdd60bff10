# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

"""\
The WSGI application serving the registered maps.

Every request to a map is decoded, normalized for that map and handed
to the process gateway, which runs the renderer. Exactly one access log
record is written per request, whatever the outcome.
"""

from html import escape

from mapfront import params
from mapfront import util
from mapfront.errors import MalformedRequest
from mapfront.gateway import CGIGateway, InvocationContract
from mapfront.glogging import Logger

CORS_ALLOW_METHODS = "GET, OPTIONS"
CORS_ALLOW_HEADERS = ",".join([
    "Authorization", "Content-Type", "Accept", "Origin", "User-Agent",
    "DNT", "Cache-Control", "X-Mx-ReqToken", "Keep-Alive",
    "X-Requested-With", "If-Modified-Since"])
# pre-flight answers are valid for 20 days
CORS_MAX_AGE = "1728000"


def cors_headers(environ):
    return [
        ("Access-Control-Allow-Origin", environ.get("HTTP_ORIGIN", "")),
        ("Access-Control-Allow-Methods", CORS_ALLOW_METHODS),
        ("Access-Control-Allow-Headers", CORS_ALLOW_HEADERS),
        ("Access-Control-Max-Age", CORS_MAX_AGE),
    ]


class LoggedBody(object):
    """\
    Response body counting the bytes sent. ``on_close`` is called once
    with that count when the server closes the body.
    """

    def __init__(self, body, on_close):
        self.body = body
        self.on_close = on_close
        self.sent = 0
        self.closed = False

    def __iter__(self):
        for chunk in self.body:
            self.sent += len(chunk)
            yield chunk

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            if hasattr(self.body, "close"):
                self.body.close()
        finally:
            self.on_close(self.sent)


class Dispatcher(object):

    def __init__(self, cfg, log=None, gateway=None, registry=None):
        self.cfg = cfg
        self.log = log or Logger(cfg)
        self.registry = registry if registry is not None else cfg.registry
        self.gateway = gateway or CGIGateway(self.log, cfg.inherit_env)
        self.executable = cfg.mapserv
        self.directory = cfg.directory

        if not len(self.registry):
            self.log.warning("No map registered, every request will get a 404")
        for mapdef in self.registry:
            self.log.info("Serving map %s at %s", mapdef.name,
                          mapdef.url_path)

    def __call__(self, environ, start_response):
        path = environ.get("PATH_INFO") or "/"

        target = self.registry.redirect(path)
        if target is not None:
            return self.redirect(environ, start_response, target)

        mapdef = self.registry.match(path)
        if mapdef is None:
            return self.not_found(environ, start_response)

        return self.serve_map(mapdef, environ, start_response)

    def contract(self, form):
        return InvocationContract(self.executable, self.directory,
                                  {"QUERY_STRING": params.encode(form)})

    def serve_map(self, mapdef, environ, start_response):
        if environ.get("REQUEST_METHOD", "GET").upper() == "OPTIONS":
            # Short-circuit options with the correct CORS headers
            start_response(util.status_line(204), cors_headers(environ))
            self.log.access(environ, 204, 0)
            return []

        try:
            form = params.parse_form(environ)
        except MalformedRequest as e:
            self.log.debug("%s: %s", util.request_uri(environ), e)
            return self.bad_request(environ, start_response)

        params.normalize(form, mapdef)
        self.log.debug("%s: %s SRS=%r MAP=%s", mapdef.name, form["REQUEST"],
                       form.get("SRS", ""), form["MAP"])

        resp = self.gateway.invoke(self.contract(form), environ)

        start_response(resp.status, cors_headers(environ) + resp.headers)

        def log_access(size):
            self.log.access(environ, resp.status_code, size)

        return LoggedBody(resp.body, log_access)

    def bad_request(self, environ, start_response):
        body = b"400"
        headers = cors_headers(environ) + [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("Content-Length", str(len(body)))]
        start_response(util.status_line(400), headers)
        self.log.access(environ, 400, len(body))
        return [body]

    def not_found(self, environ, start_response):
        body = b"404 page not found\n"
        start_response(util.status_line(404), [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("Content-Length", str(len(body)))])
        self.log.access(environ, 404, len(body))
        return [body]

    def redirect(self, environ, start_response, target):
        location = environ.get("SCRIPT_NAME", "") + target
        if environ.get("QUERY_STRING"):
            location += "?" + environ["QUERY_STRING"]

        body = b""
        if environ.get("REQUEST_METHOD", "GET").upper() in ("GET", "HEAD"):
            body = ('<a href="%s">Moved Permanently</a>.\n\n'
                    % escape(location)).encode("latin-1")
        headers = [("Location", location),
                   ("Content-Length", str(len(body)))]
        if body:
            headers.append(("Content-Type", "text/html; charset=utf-8"))
        start_response(util.status_line(301), headers)
        self.log.access(environ, 301, len(body))
        return [body] if body else []
