# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

"""\
Process gateways run the renderer for a request.

The dispatcher only builds an :class:`InvocationContract` and hands it
to a gateway together with the WSGI environ. :class:`CGIGateway` runs
the renderer as a CGI/1.1 script (RFC 3875): request metadata goes in
the process environment, the body on stdin, and the headers and body
printed on stdout become the response.
"""

import io
import os
import subprocess

from mapfront import SERVER_SOFTWARE
from mapfront import util
from mapfront.errors import GatewayError

DEFAULT_PATH = "/bin:/usr/bin:/usr/ucb:/usr/bsd:/usr/local/bin"


class InvocationContract(object):
    """ what to run for a request: executable, working directory, extra env """

    def __init__(self, executable, directory, env=None):
        self.executable = executable
        self.directory = directory
        self.env = dict(env or {})

    def __repr__(self):
        return "<InvocationContract %s in %s %r>" % (
            self.executable, self.directory, self.env)


class GatewayResponse(object):

    def __init__(self, status, headers=None, body=None):
        self.status = status
        self.headers = list(headers or [])
        self.body = body if body is not None else []

    @property
    def status_code(self):
        return int(self.status.split(None, 1)[0])


class Gateway(object):
    """\
    Base class of process gateways.

    ``invoke`` must always return a :class:`GatewayResponse`; failures of
    the renderer are reported as error responses, never raised.
    """

    def __init__(self, log):
        self.log = log

    def invoke(self, contract, environ):
        raise NotImplementedError()

    def internal_error(self):
        body = b"Internal Server Error\n"
        return GatewayResponse(util.status_line(500), [
            ("Content-Type", "text/plain; charset=utf-8"),
            ("Content-Length", str(len(body)))], [body])


def native_to_env(value):
    """ re-decode a WSGI native string for the child process environment """
    try:
        return os.fsdecode(value.encode("latin-1"))
    except UnicodeEncodeError:
        return value


def cgi_environ(contract, environ, inherit_env=()):
    env = {
        "SERVER_SOFTWARE": SERVER_SOFTWARE,
        "SERVER_NAME": environ.get("SERVER_NAME", ""),
        "SERVER_PORT": str(environ.get("SERVER_PORT", "")),
        "SERVER_PROTOCOL": environ.get("SERVER_PROTOCOL", "HTTP/1.0"),
        "GATEWAY_INTERFACE": "CGI/1.1",
        "REQUEST_METHOD": environ.get("REQUEST_METHOD", "GET"),
        "REQUEST_URI": util.request_uri(environ),
        "QUERY_STRING": environ.get("QUERY_STRING", ""),
        "SCRIPT_NAME": environ.get("SCRIPT_NAME", ""),
        "SCRIPT_FILENAME": contract.executable,
        "PATH_INFO": environ.get("PATH_INFO", ""),
        "REMOTE_ADDR": environ.get("REMOTE_ADDR", ""),
        "REMOTE_HOST": environ.get("REMOTE_ADDR", ""),
        "REMOTE_PORT": str(environ.get("REMOTE_PORT", "")),
    }

    for key, value in environ.items():
        if not key.startswith("HTTP_") or not isinstance(value, str):
            continue
        # httpoxy: a client "Proxy" header must not become HTTP_PROXY
        if key == "HTTP_PROXY":
            continue
        env[key] = value

    for key in ("CONTENT_TYPE", "CONTENT_LENGTH"):
        if environ.get(key):
            env[key] = environ[key]

    env = {k: native_to_env(v) for k, v in env.items()}

    env["PATH"] = os.environ.get("PATH") or DEFAULT_PATH
    for name in inherit_env:
        if name in os.environ:
            env[name] = os.environ[name]

    env.update(contract.env)
    return env


def parse_status(value):
    if len(value) < 3:
        raise GatewayError("bogus status (short): %r" % value)
    try:
        code = int(value[:3])
    except ValueError:
        raise GatewayError("bogus status: %r" % value)
    return util.status_line(code, value[3:].strip())


def parse_cgi_output(data, log=None):
    """\
    Split the output of a CGI script into status, headers and body.

    Header lines end at the first empty line. A ``Status`` header sets
    the status, a ``Location`` without one means a 302 and otherwise a
    ``Content-Type`` is required. Hop-by-hop headers are dropped.
    """
    stream = io.BytesIO(data)
    status = None
    headers = []

    while True:
        line = stream.readline()
        if not line:
            break
        line = line.rstrip(b"\r\n")
        if not line:
            break

        name, sep, value = line.partition(b":")
        if not sep:
            if log is not None:
                log.warning("cgi: bogus header line: %r", line)
            continue

        name = name.strip().decode("latin-1")
        value = value.strip().decode("latin-1")
        if name.lower() == "status":
            status = parse_status(value)
        elif util.is_hoppish(name):
            continue
        else:
            headers.append((name, value))

    if not headers:
        raise GatewayError("no headers")

    lnames = set(name.lower() for name, _ in headers)
    if status is None:
        if "location" in lnames:
            status = util.status_line(302)
        elif "content-type" not in lnames:
            raise GatewayError("missing required Content-Type in headers")
        else:
            status = util.status_line(200)

    return status, headers, stream.read()


def read_body(environ):
    length = environ.get("CONTENT_LENGTH")
    stream = environ.get("wsgi.input")
    if not length or stream is None:
        return b""
    try:
        length = int(length)
    except ValueError:
        return b""
    if length <= 0:
        return b""
    return stream.read(length)


class CGIGateway(Gateway):
    """ Run the renderer as a CGI script for every request """

    def __init__(self, log, inherit_env=()):
        super().__init__(log)
        self.inherit_env = list(inherit_env or ())

    def environ(self, contract, environ):
        return cgi_environ(contract, environ, self.inherit_env)

    def invoke(self, contract, environ):
        env = self.environ(contract, environ)
        stdin = read_body(environ)

        try:
            proc = subprocess.Popen([contract.executable],
                                    cwd=contract.directory,
                                    env=env,
                                    stdin=subprocess.PIPE,
                                    stdout=subprocess.PIPE,
                                    stderr=subprocess.PIPE)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            # ValueError: NUL bytes in the environment (e.g. PATH_INFO)
            self.log.error("CGI error running %s: %s", contract.executable, e)
            return self.internal_error()

        stdout, stderr = proc.communicate(stdin)

        for line in stderr.splitlines():
            self.log.error("%s: %s", contract.executable,
                           line.decode("utf-8", "replace"))

        if proc.returncode:
            self.log.warning("%s exited with status %s", contract.executable,
                             proc.returncode)

        try:
            status, headers, body = parse_cgi_output(stdout, self.log)
        except GatewayError as e:
            self.log.error("cgi: %s", e)
            return self.internal_error()

        return GatewayResponse(status, headers, [body] if body else [])
