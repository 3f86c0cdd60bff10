# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

"""\
Request parameter decoding and normalization.

mapserv only understands a single value per parameter and trusts the
``MAP`` parameter to name a file on disk, so every request goes through
:func:`normalize` before it reaches the renderer.
"""

import io
import re
from urllib.parse import quote_plus, unquote_to_bytes

from mapfront.errors import MalformedRequest

EXCEPTIONS = ("blank", "image", "xml")
DEFAULT_EXCEPTIONS = "xml"
DEFAULT_REQUEST = "GetCapabilities"
DEFAULT_SERVICE = "WMS"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
FORM_METHODS = ("POST", "PUT", "PATCH")
MAX_FORM_SIZE = 10 << 20

BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


def unescape(s):
    """\
    Decode a query component. ``s`` is a WSGI native string (bytes
    decoded as latin-1); the result is UTF-8 text, undecodable bytes
    being kept as surrogates so they survive re-encoding.
    """
    m = BAD_ESCAPE.search(s)
    if m:
        raise MalformedRequest(s, "invalid URL escape %r" % s[m.start():m.start() + 3])
    try:
        raw = unquote_to_bytes(s.replace("+", " ").encode("latin-1"))
    except UnicodeEncodeError:
        raise MalformedRequest(s, "not a latin-1 native string")
    return raw.decode("utf-8", "surrogateescape")


def parse_query(qs, form=None):
    """ parse a query string into a dict of value lists, in order """
    if form is None:
        form = {}
    for field in qs.split("&"):
        if not field:
            continue
        if ";" in field:
            raise MalformedRequest(field, "invalid semicolon separator in query")
        key, _, value = field.partition("=")
        form.setdefault(unescape(key), []).append(unescape(value))
    return form


def read_form_body(environ):
    method = environ.get("REQUEST_METHOD", "GET").upper()
    if method not in FORM_METHODS:
        return None

    ctype = environ.get("CONTENT_TYPE", "")
    if ctype.split(";", 1)[0].strip().lower() != FORM_CONTENT_TYPE:
        return None

    length = environ.get("CONTENT_LENGTH", "")
    try:
        length = int(length) if length else None
    except ValueError:
        raise MalformedRequest("Content-Length", "invalid value %r" % length)

    if length is not None and length > MAX_FORM_SIZE:
        raise MalformedRequest("body", "form body too large")

    stream = environ.get("wsgi.input")
    if stream is None:
        return ""
    if length is None:
        data = stream.read(MAX_FORM_SIZE + 1)
    else:
        data = stream.read(length)
    if len(data) > MAX_FORM_SIZE:
        raise MalformedRequest("body", "form body too large")

    # the body is merged into the query string handed to the renderer
    environ["wsgi.input"] = io.BytesIO()
    environ["CONTENT_LENGTH"] = "0"
    return data.decode("latin-1")


def parse_form(environ):
    """\
    Decode the request parameters of a WSGI request.

    Url-encoded form bodies of POST, PUT and PATCH requests are decoded
    first, so their values come before the query string ones. Raises
    :class:`MalformedRequest` when a field can't be decoded.
    """
    form = {}
    body = read_form_body(environ)
    if body:
        parse_query(body, form)
    parse_query(environ.get("QUERY_STRING", ""), form)
    return form


def normalize_keys(form, normal_func=str.upper):
    """\
    Rewrite every key with normal_func and keep a single value per key.

    Keys colliding once normalized are merged in order of appearance.
    mapserv doesn't take multiple values per parameter, only the first
    one is kept.
    """
    merged = {}
    for param, values in form.items():
        if isinstance(values, str):
            values = [values]
        merged.setdefault(normal_func(param), []).extend(values)

    form.clear()
    for param, values in merged.items():
        form[param] = values[0] if values else ""
    return form


def invalid_exception(value):
    return (value or "").lower() not in EXCEPTIONS


def normalize(form, mapdef):
    """\
    Normalize the decoded request parameters in place for mapdef.

    Keys are uppercased, ``REQUEST`` and ``SERVICE`` get defaults, the
    client ``MAP`` is replaced by the mapfile selected from ``SRS`` and
    an unknown ``EXCEPTIONS`` value is forced to ``xml``.
    """
    normalize_keys(form)

    if not form.get("REQUEST"):
        form["REQUEST"] = DEFAULT_REQUEST

    if not form.get("SERVICE"):
        form["SERVICE"] = DEFAULT_SERVICE

    # Don't let the user pick the mapfile.
    form.pop("MAP", None)
    form["MAP"] = mapdef.mapfile(form.get("SRS", ""))

    # ESRI clients send values mapserv rejects.
    if invalid_exception(form.get("EXCEPTIONS")):
        form["EXCEPTIONS"] = DEFAULT_EXCEPTIONS

    return form


def encode(form):
    """ encode the normalized parameters as a query string, keys sorted """
    parts = []
    for key in sorted(form):
        parts.append("%s=%s" % (
            quote_plus(key, errors="surrogateescape"),
            quote_plus(form[key], errors="surrogateescape")))
    return "&".join(parts)
