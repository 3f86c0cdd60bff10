# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import argparse
import copy
import json
import os
import sys
import textwrap

from gunicorn.config import validate_bool, validate_pos_int, validate_string

from mapfront import __version__
from mapfront.errors import ConfigError
from mapfront.maps import MapDefinition, MapRegistry

KNOWN_SETTINGS = []


def make_settings(ignore=None):
    settings = {}
    ignore = ignore or ()
    for s in KNOWN_SETTINGS:
        setting = s()
        if setting.name in ignore:
            continue
        settings[setting.name] = setting.copy()
    return settings


class Config(object):

    def __init__(self, usage=None, prog=None):
        self.settings = make_settings()
        self.usage = usage
        self.prog = prog or os.path.basename(sys.argv[0])

    def __str__(self):
        lines = []
        kmax = max(len(k) for k in self.settings)
        for k in sorted(self.settings):
            v = self.settings[k].value
            lines.append("{k:{kmax}} = {v}".format(k=k, v=v, kmax=kmax))
        return "\n".join(lines)

    def __getattr__(self, name):
        if name not in self.settings:
            raise AttributeError("No configuration setting for: %s" % name)
        return self.settings[name].get()

    def __setattr__(self, name, value):
        if name != "settings" and name in self.settings:
            raise AttributeError("Invalid access!")
        super().__setattr__(name, value)

    def set(self, name, value):
        if name not in self.settings:
            raise AttributeError("No configuration setting for: %s" % name)
        self.settings[name].set(value)

    def parser(self):
        kwargs = {
            "usage": self.usage,
            "prog": self.prog
        }
        parser = argparse.ArgumentParser(**kwargs)
        parser.add_argument("-v", "--version",
                            action="version", default=argparse.SUPPRESS,
                            version="%(prog)s (version " + __version__ + ")\n",
                            help="show program's version number and exit")

        keys = sorted(self.settings, key=self.settings.__getitem__)
        for k in keys:
            self.settings[k].add_option(parser)

        return parser

    @property
    def registry(self):
        return MapRegistry(self.settings['maps'].get())

    @property
    def server_options(self):
        """ the settings handed over to the gunicorn server """
        return {
            "bind": self.bind,
            "workers": self.workers,
            "threads": self.threads,
            "timeout": self.timeout,
            "errorlog": self.errorlog,
            "loglevel": self.loglevel,
            "proc_name": "mapfront",
        }


class SettingMeta(type):
    def __new__(cls, name, bases, attrs):
        super_new = super().__new__
        parents = [b for b in bases if isinstance(b, SettingMeta)]
        if not parents:
            return super_new(cls, name, bases, attrs)

        attrs["order"] = len(KNOWN_SETTINGS)
        attrs["validator"] = staticmethod(attrs["validator"])

        new_class = super_new(cls, name, bases, attrs)
        new_class.fmt_desc(attrs.get("desc", ""))
        KNOWN_SETTINGS.append(new_class)
        return new_class

    def fmt_desc(cls, desc):
        desc = textwrap.dedent(desc).strip()
        setattr(cls, "desc", desc)
        setattr(cls, "short", desc.splitlines()[0])


class Setting(object):
    name = None
    value = None
    section = None
    cli = None
    validator = None
    type = None
    meta = None
    action = None
    default = None
    short = None
    desc = None
    nargs = None
    const = None

    def __init__(self):
        if self.default is not None:
            self.set(self.default)

    def add_option(self, parser):
        if not self.cli:
            return
        args = tuple(self.cli)

        help_txt = "%s [%s]" % (self.short, self.default)
        help_txt = help_txt.replace("%", "%%")

        kwargs = {
            "dest": self.name,
            "action": self.action or "store",
            "type": self.type or str,
            "default": None,
            "help": help_txt
        }

        if self.meta is not None:
            kwargs['metavar'] = self.meta

        if kwargs["action"] != "store":
            kwargs.pop("type")

        if self.nargs is not None:
            kwargs["nargs"] = self.nargs

        if self.const is not None:
            kwargs["const"] = self.const

        parser.add_argument(*args, **kwargs)

    def copy(self):
        return copy.copy(self)

    def get(self):
        return self.value

    def set(self, val):
        if not callable(self.validator):
            raise TypeError('Invalid validator: %s' % self.name)
        self.value = self.validator(val)

    def __lt__(self, other):
        return (self.section == other.section and
                self.order < other.order)

    def __repr__(self):
        return "<%s.%s object at %x with value %r>" % (
            self.__class__.__module__,
            self.__class__.__name__,
            id(self),
            self.value,
        )


Setting = SettingMeta('Setting', (Setting,), {})


def validate_list_string(val):
    if not val:
        return []

    if isinstance(val, str):
        val = [val]

    return [v.strip() for s in val for v in s.split(",") if v.strip()]


def validate_chdir(val):
    # valid if the value is a string
    val = validate_string(val)

    # transform relative paths
    path = os.path.abspath(os.path.normpath(os.path.join(os.getcwd(), val)))

    # test if the path exists
    if not os.path.exists(path):
        raise ConfigError("can't chdir to %r" % val)

    return path


def validate_maps(val):
    """\
    A list of map definitions, given as dictionaries or as the path of
    a JSON file holding such a list.
    """
    if val is None:
        return []

    if isinstance(val, str):
        path = val.strip()
        try:
            with open(path) as f:
                val = json.load(f)
        except OSError as e:
            raise ConfigError("can't read maps file %r: %s" % (path, e))
        except ValueError as e:
            raise ConfigError("invalid maps file %r: %s" % (path, e))

    if isinstance(val, dict):
        val = [val]
    if not isinstance(val, (list, tuple)):
        raise TypeError("Value is not a list of maps: %r" % val)

    maps = [MapDefinition.from_dict(m) for m in val]
    # duplicate url paths are refused here rather than at first request
    MapRegistry(maps)
    return maps


class ConfigFile(Setting):
    name = "config"
    section = "Config File"
    cli = ["-c", "--config"]
    meta = "CONFIG"
    validator = validate_string
    default = None
    desc = """\
        The mapfront config file.

        A Python file whose module level names override the defaults, e.g.
        ``maps = [{"name": "world", "projections": ["3857"]}]``.

        Only has an effect when specified on the command line.
        """


class Bind(Setting):
    name = "bind"
    section = "Server Socket"
    cli = ["-b", "--bind"]
    meta = "ADDRESS"
    validator = validate_string
    default = "127.0.0.1:8000"
    desc = """\
        The socket to bind.

        A string of the form: ``HOST``, ``HOST:PORT``, ``unix:PATH``. It is
        handed over to the gunicorn server unchanged.
        """


class Workers(Setting):
    name = "workers"
    section = "Worker Processes"
    cli = ["-w", "--workers"]
    meta = "INT"
    validator = validate_pos_int
    type = int
    default = 1
    desc = """\
        The number of worker processes for handling requests.

        Every request holds its worker, or one of its threads, for as long
        as the renderer runs.
        """


class Threads(Setting):
    name = "threads"
    section = "Worker Processes"
    cli = ["--threads"]
    meta = "INT"
    validator = validate_pos_int
    type = int
    default = 1
    desc = """\
        The number of worker threads for handling requests.

        A value greater than 1 selects gunicorn's threaded worker.
        """


class Timeout(Setting):
    name = "timeout"
    section = "Worker Processes"
    cli = ["-t", "--timeout"]
    meta = "INT"
    validator = validate_pos_int
    type = int
    default = 30
    desc = """\
        Workers silent for more than this many seconds are killed and restarted.

        A worker waiting on a renderer that never exits is only recovered
        by this timeout.
        """


class Mapserv(Setting):
    name = "mapserv"
    section = "Renderer"
    cli = ["--mapserv"]
    meta = "FILE"
    validator = validate_string
    default = "/usr/bin/mapserv"
    desc = """\
        The renderer executable run for every map request.
        """


class Directory(Setting):
    name = "directory"
    section = "Renderer"
    cli = ["-d", "--directory"]
    meta = "DIR"
    validator = validate_chdir
    default = "."
    desc = """\
        The working directory of the renderer.

        Mapfile names are relative to this directory.
        """


class Maps(Setting):
    name = "maps"
    section = "Renderer"
    cli = ["-m", "--maps"]
    meta = "FILE"
    validator = validate_maps
    default = []
    desc = """\
        The maps to serve.

        A list of dictionaries with the keys ``name``, ``projections``,
        ``aliases`` and ``path``, or on the command line the path of a
        JSON file holding that list.
        """


class InheritEnv(Setting):
    name = "inherit_env"
    section = "Renderer"
    cli = ["--inherit-env"]
    meta = "STRING"
    validator = validate_list_string
    default = "LD_LIBRARY_PATH"
    desc = """\
        Environment variables passed on to the renderer.

        A comma separated list of names; ``PATH`` is always passed.
        """


class AccessLog(Setting):
    name = "accesslog"
    section = "Logging"
    cli = ["--access-logfile"]
    meta = "FILE"
    validator = validate_string
    default = "-"
    desc = """\
        The Access log file to write to.

        ``'-'`` means log to stderr.
        """


class AccessLogFormat(Setting):
    name = "access_log_format"
    section = "Logging"
    cli = ["--access-logformat"]
    meta = "STRING"
    validator = validate_string
    default = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s'
    desc = """\
        The access log format.

        ===========  ===========
        Identifier   Description
        ===========  ===========
        h            remote address
        l            ``'-'``
        u            user name (always ``'-'``)
        t            date of the request
        r            status line (e.g. ``GET / HTTP/1.1``)
        m            request method
        U            URL path without query string
        q            query string
        H            protocol
        s            status
        b            response length
        f            referer
        a            user agent
        {header}i    request header
        ===========  ===========
        """


class ErrorLog(Setting):
    name = "errorlog"
    section = "Logging"
    cli = ["--error-logfile", "--log-file"]
    meta = "FILE"
    validator = validate_string
    default = '-'
    desc = """\
        The Error log file to write to.

        Using ``'-'`` for FILE makes mapfront log to stderr.
        """


class Loglevel(Setting):
    name = "loglevel"
    section = "Logging"
    cli = ["--log-level"]
    meta = "LEVEL"
    validator = validate_string
    default = "info"
    desc = """\
        The granularity of Error log outputs.

        Valid level names are:

        * ``'debug'``
        * ``'info'``
        * ``'warning'``
        * ``'error'``
        * ``'critical'``
        """


class LogConfig(Setting):
    name = "logconfig"
    section = "Logging"
    cli = ["--log-config"]
    meta = "FILE"
    validator = validate_string
    default = None
    desc = """\
        The log config file to use.

        mapfront uses the standard Python logging module's Configuration
        file format.
        """


class ConfigCheck(Setting):
    name = "check_config"
    section = "Debugging"
    cli = ["--check-config"]
    validator = validate_bool
    action = "store_true"
    default = False
    desc = """\
        Check the configuration and exit.

        The exit status is 0 if the configuration is correct, and 1 if not.
        """
