# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import importlib.util
import importlib.machinery
import os
import sys
from http.client import responses
from urllib.parse import quote

monthname = [None,
             'Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
             'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']

# Headers owned by the front-end server. A WSGI application may not
# emit them, so anything the renderer prints under these names is
# dropped before the response is started.
hop_headers = set("""
    connection keep-alive proxy-authenticate proxy-authorization
    te trailers transfer-encoding upgrade
    """.split())


def split_host_port(addr):
    """\
    Split a network address of the form ``host:port`` or
    ``[host]:port`` into host and port.

    Raises ``ValueError`` when the address has no port or too many
    colons to be unambiguous.
    """
    if addr.startswith('['):
        end = addr.find(']')
        if end < 0:
            raise ValueError("missing ']' in address %r" % addr)
        if addr[end + 1:end + 2] != ':':
            raise ValueError("missing port in address %r" % addr)
        host, port = addr[1:end], addr[end + 2:]
        if '[' in host or ']' in port:
            raise ValueError("unexpected bracket in address %r" % addr)
        return host, port

    i = addr.rfind(':')
    if i < 0:
        raise ValueError("missing port in address %r" % addr)
    host, port = addr[:i], addr[i + 1:]
    if ':' in host:
        raise ValueError("too many colons in address %r" % addr)
    if '[' in host or ']' in host or '[' in port or ']' in port:
        raise ValueError("unexpected bracket in address %r" % addr)
    return host, port


def remote_host(addr):
    """ return the host part of addr, or addr itself if it can't be split """
    try:
        return split_host_port(addr)[0]
    except ValueError:
        return addr


def request_uri(environ):
    """ the request URI as sent by the client: path and query """
    uri = environ.get("RAW_URI") or environ.get("REQUEST_URI")
    if uri:
        return uri
    uri = quote(environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", ""),
                encoding="latin-1", errors="replace")
    if environ.get("QUERY_STRING"):
        uri += "?" + environ["QUERY_STRING"]
    return uri or "/"


def status_line(code, reason=None):
    if not reason:
        reason = responses.get(code, "Unknown")
    return "%d %s" % (code, reason)


def is_hoppish(header):
    return header.lower().strip() in hop_headers


def load_config_from_filename(filename):
    """\
    Execute a Python configuration file and return its namespace.

    Only module level names count as settings; the file is loaded under
    the ``__config__`` module name so it never shadows a real module.
    """
    if not os.path.exists(filename):
        raise RuntimeError("%r doesn't exist" % filename)

    ext = os.path.splitext(filename)[1]
    try:
        module_name = '__config__'
        if ext in [".py", ".pyc"]:
            spec = importlib.util.spec_from_file_location(module_name, filename)
        else:
            msg = "configuration file should have a valid Python extension.\n"
            warn(msg)
            loader_ = importlib.machinery.SourceFileLoader(module_name, filename)
            spec = importlib.util.spec_from_file_location(module_name, filename,
                                                          loader=loader_)
        mod = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = mod
        spec.loader.exec_module(mod)
    except Exception as e:
        raise RuntimeError("Failed to read config file %s: %s" % (filename, e))

    return vars(mod)


def check_is_writeable(path):
    try:
        with open(path, 'a'):
            pass
    except OSError as e:
        raise RuntimeError("Error: '%s' isn't writable [%r]" % (path, e))


def warn(msg):
    print("!!!", file=sys.stderr)

    lines = msg.splitlines()
    for i, line in enumerate(lines):
        if i == 0:
            line = "WARNING: %s" % line
        print("!!! %s" % line, file=sys.stderr)

    print("!!!\n", file=sys.stderr)
    sys.stderr.flush()
