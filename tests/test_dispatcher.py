#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import io
import os

import pytest

from mapfront.dispatcher import (CORS_ALLOW_HEADERS, Dispatcher, LoggedBody,
                                 cors_headers)
from mapfront.gateway import Gateway, GatewayResponse
from mapfront.glogging import Logger

from tests.support import (FakeGateway, StartResponse, access_records,
                           call_app, make_config, make_environ)

ORIGIN = "https://viewer.example.com"

CORS_NAMES = [
    "Access-Control-Allow-Origin",
    "Access-Control-Allow-Methods",
    "Access-Control-Allow-Headers",
    "Access-Control-Max-Age",
]


@pytest.fixture
def cfg(tmp_path):
    return make_config(directory=str(tmp_path))


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(cfg, gateway):
    return Dispatcher(cfg, Logger(cfg), gateway=gateway)


def test_cors_headers():
    headers = dict(cors_headers({"HTTP_ORIGIN": ORIGIN}))
    assert headers == {
        "Access-Control-Allow-Origin": ORIGIN,
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": CORS_ALLOW_HEADERS,
        "Access-Control-Max-Age": "1728000",
    }
    assert "X-Mx-ReqToken" in CORS_ALLOW_HEADERS.split(",")


def test_cors_headers_without_origin():
    headers = dict(cors_headers({}))
    assert headers["Access-Control-Allow-Origin"] == ""


def test_options_short_circuit(app, gateway, caplog):
    environ = make_environ(method="OPTIONS", query="srs=%zz",
                           HTTP_ORIGIN=ORIGIN)
    resp, body = call_app(app, environ)

    assert resp.status == "204 No Content"
    assert [name for name, _ in resp.headers] == CORS_NAMES
    assert resp.header("Access-Control-Allow-Origin") == ORIGIN
    assert body == b""
    assert gateway.calls == []

    records = access_records(caplog)
    assert len(records) == 1
    assert records[0].endswith('"OPTIONS /world/?srs=%zz HTTP/1.1" 204 0')


def test_get_map(app, cfg, gateway, caplog, tmp_path):
    environ = make_environ(
        query="SERVICE=WMS&REQUEST=GetMap&SRS=EPSG:900913"
              "&MAP=../../etc/passwd",
        HTTP_ORIGIN=ORIGIN)
    resp, body = call_app(app, environ)

    assert len(gateway.calls) == 1
    contract, gw_environ = gateway.calls[0]
    assert gw_environ is environ
    assert contract.executable == "/usr/bin/mapserv"
    assert contract.directory == str(tmp_path)
    assert contract.env == {
        "QUERY_STRING": "EXCEPTIONS=xml&MAP=world_3857.map&REQUEST=GetMap"
                        "&SERVICE=WMS&SRS=EPSG%3A900913"
    }

    assert resp.status == "200 OK"
    assert [name for name, _ in resp.headers] == CORS_NAMES + ["Content-Type"]
    assert resp.header("Content-Type") == "image/png"
    assert resp.header("Access-Control-Allow-Origin") == ORIGIN
    assert body == b"PNGDATA"

    records = access_records(caplog)
    assert len(records) == 1
    assert records[0].startswith("127.0.0.1 - - [")
    assert records[0].endswith(" 200 7")


def test_get_capabilities_default(app, gateway):
    call_app(app, make_environ(query=""))
    contract, _ = gateway.calls[0]
    assert contract.env["QUERY_STRING"] == (
        "EXCEPTIONS=xml&MAP=world.map&REQUEST=GetCapabilities&SERVICE=WMS")


def test_mixed_case_keys(app, gateway):
    call_app(app, make_environ(
        query="srs=EPSG:900913&Srs=EPSG:4326&map=x.map&Exceptions=IMAGE"))
    contract, _ = gateway.calls[0]
    assert contract.env["QUERY_STRING"] == (
        "EXCEPTIONS=IMAGE&MAP=world_3857.map&REQUEST=GetCapabilities"
        "&SERVICE=WMS&SRS=EPSG%3A900913")


def test_form_body(app, gateway):
    body = b"request=GetMap&srs=EPSG%3A900913&map=/etc/passwd"
    environ = make_environ(
        method="POST",
        CONTENT_TYPE="application/x-www-form-urlencoded",
        CONTENT_LENGTH=str(len(body)),
        **{"wsgi.input": io.BytesIO(body)})
    resp, _ = call_app(app, environ)

    assert resp.status == "200 OK"
    contract, gw_environ = gateway.calls[0]
    assert contract.env["QUERY_STRING"] == (
        "EXCEPTIONS=xml&MAP=world_3857.map&REQUEST=GetMap"
        "&SERVICE=WMS&SRS=EPSG%3A900913")
    assert gw_environ["CONTENT_LENGTH"] == "0"


@pytest.mark.parametrize('query', [
    'srs=%zz',
    'srs=EPSG:4326;map=x',
    'a=%',
])
def test_malformed_request(app, gateway, caplog, query):
    environ = make_environ(query=query, HTTP_ORIGIN=ORIGIN)
    resp, body = call_app(app, environ)

    assert resp.status == "400 Bad Request"
    assert body == b"400"
    assert resp.header("Access-Control-Allow-Origin") == ORIGIN
    assert resp.header("Access-Control-Max-Age") == "1728000"
    assert gateway.calls == []

    records = access_records(caplog)
    assert len(records) == 1
    assert records[0].endswith(" 400 3")


def test_gateway_error_is_passed_through(cfg, caplog):
    gateway = FakeGateway(Gateway(None).internal_error())
    app = Dispatcher(cfg, Logger(cfg), gateway=gateway)
    resp, body = call_app(app, make_environ())

    assert resp.status == "500 Internal Server Error"
    assert resp.header("Access-Control-Allow-Origin") == ""
    assert body == b"Internal Server Error\n"
    assert access_records(caplog)[0].endswith(" 500 22")


def test_renderer_status_is_logged(cfg, caplog):
    gateway = FakeGateway(GatewayResponse(
        "404 Not Found", [("Content-Type", "text/xml")], [b"<error/>"]))
    app = Dispatcher(cfg, Logger(cfg), gateway=gateway)
    resp, body = call_app(app, make_environ())

    assert resp.status == "404 Not Found"
    assert access_records(caplog)[0].endswith(" 404 8")


def test_access_logged_when_body_closed(app, caplog):
    resp = StartResponse()
    result = app(make_environ(), resp)
    assert resp.status == "200 OK"
    assert b"".join(result) == b"PNGDATA"
    assert access_records(caplog) == []

    result.close()
    result.close()
    records = access_records(caplog)
    assert len(records) == 1
    assert records[0].endswith(" 200 7")


def test_logged_body_counts_sent_bytes():
    sizes = []
    body = LoggedBody(iter([b"abc", b"", b"de"]), sizes.append)
    it = iter(body)
    assert next(it) == b"abc"
    body.close()
    assert sizes == [3]


def test_not_found(app, gateway, caplog):
    resp, body = call_app(app, make_environ(path="/roads/"))
    assert resp.status == "404 Not Found"
    assert body == b"404 page not found\n"
    assert resp.header("Access-Control-Allow-Origin") is None
    assert gateway.calls == []
    assert access_records(caplog)[0].endswith(" 404 19")


def test_redirect_to_trailing_slash(app, gateway, caplog):
    environ = make_environ(path="/world", query="srs=EPSG:4326")
    resp, body = call_app(app, environ)
    assert resp.status == "301 Moved Permanently"
    assert resp.header("Location") == "/world/?srs=EPSG:4326"
    assert b"Moved Permanently" in body
    assert gateway.calls == []
    assert len(access_records(caplog)) == 1


def test_redirect_head(app):
    resp, body = call_app(app, make_environ(path="/world", method="HEAD"))
    assert resp.status == "301 Moved Permanently"
    assert resp.header("Location") == "/world/"
    # written like for GET, the server drops HEAD bodies
    assert b"Moved Permanently" in body
    assert resp.header("Content-Length") == str(len(body))


def test_redirect_post_has_no_body(app):
    resp, body = call_app(app, make_environ(path="/world", method="POST"))
    assert resp.status == "301 Moved Permanently"
    assert body == b""
    assert resp.header("Content-Length") == "0"


def test_map_paths(tmp_path, caplog):
    cfg = make_config(maps=[
        {"name": "world", "projections": ["3857"], "path": "/wms/world"},
        {"name": "base", "path": "/"},
    ], directory=str(tmp_path))
    gateway = FakeGateway()
    app = Dispatcher(cfg, Logger(cfg), gateway=gateway)

    call_app(app, make_environ(path="/wms/world/", query="srs=EPSG:3857"))
    call_app(app, make_environ(path="/anything", query="srs=EPSG:3857"))
    assert [c.env["QUERY_STRING"].split("&")[1] for c, _ in gateway.calls] == [
        "MAP=world_3857.map", "MAP=base.map"]


def test_no_maps_warning(tmp_path, caplog):
    cfg = make_config(maps=[], directory=str(tmp_path))
    app = Dispatcher(cfg, Logger(cfg), gateway=FakeGateway())
    assert any("No map registered" in r.getMessage() for r in caplog.records)

    resp, _ = call_app(app, make_environ())
    assert resp.status == "404 Not Found"


def test_serving_maps_logged(cfg, caplog):
    Dispatcher(cfg, Logger(cfg), gateway=FakeGateway())
    messages = [r.getMessage() for r in caplog.records
                if r.name == "mapfront.error"]
    assert "Serving map world at /world/" in messages


@pytest.mark.skipif(not os.path.exists("/bin/sh"), reason="needs /bin/sh")
def test_renderer_failure_is_logged_once(tmp_path, caplog):
    script = tmp_path / "mapserv"
    script.write_text('#!/bin/sh\necho "Content-Type: text/plain"\necho ""\n')
    script.chmod(0o755)
    cfg = make_config(mapserv=str(script), directory=str(tmp_path))
    app = Dispatcher(cfg, Logger(cfg))

    environ = make_environ(path="/world/\x00", query="srs=EPSG:4326",
                           HTTP_ORIGIN=ORIGIN)
    resp, body = call_app(app, environ)

    assert resp.status == "500 Internal Server Error"
    assert resp.header("Access-Control-Allow-Origin") == ORIGIN
    assert body == b"Internal Server Error\n"
    records = access_records(caplog)
    assert len(records) == 1
    assert records[0].endswith(" 500 22")
