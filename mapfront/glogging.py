# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import datetime
import logging
from logging.config import fileConfig
import os

from mapfront import util


class SafeAtoms(dict):

    def __init__(self, atoms):
        dict.__init__(self)
        for key, value in atoms.items():
            if isinstance(value, str):
                self[key] = value.replace('"', '\\"')
            else:
                self[key] = value

    def __getitem__(self, k):
        if k.startswith("{"):
            kl = k.lower()
            if kl in self:
                return super().__getitem__(kl)
            else:
                return "-"
        if k in self:
            return super().__getitem__(k)
        else:
            return '-'


class Logger(object):

    LOG_LEVELS = {
        "critical": logging.CRITICAL,
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "info": logging.INFO,
        "debug": logging.DEBUG
    }
    loglevel = logging.INFO

    error_fmt = r"%(asctime)s [%(process)d] [%(levelname)s] %(message)s"
    datefmt = r"[%Y-%m-%d %H:%M:%S %z]"

    access_fmt = "%(message)s"

    def __init__(self, cfg):
        self.error_log = logging.getLogger("mapfront.error")
        self.access_log = logging.getLogger("mapfront.access")
        self.cfg = cfg
        self.setup(cfg)

    def setup(self, cfg):
        self.loglevel = self.LOG_LEVELS.get(cfg.loglevel.lower(), logging.INFO)
        self.error_log.setLevel(self.loglevel)
        self.access_log.setLevel(logging.INFO)

        if not cfg.logconfig:
            # set mapfront.error handler
            self._set_handler(self.error_log, cfg.errorlog,
                              logging.Formatter(self.error_fmt, self.datefmt))

            # set mapfront.access handler
            if cfg.accesslog is not None:
                self._set_handler(self.access_log, cfg.accesslog,
                                  fmt=logging.Formatter(self.access_fmt))
        else:
            if os.path.exists(cfg.logconfig):
                defaults = {
                    "__file__": cfg.logconfig,
                    "here": os.path.dirname(cfg.logconfig),
                }
                fileConfig(cfg.logconfig, defaults=defaults,
                           disable_existing_loggers=False)
            else:
                msg = "Error: log config '%s' not found"
                raise RuntimeError(msg % cfg.logconfig)

    def critical(self, msg, *args, **kwargs):
        self.error_log.critical(msg, *args, **kwargs)

    def error(self, msg, *args, **kwargs):
        self.error_log.error(msg, *args, **kwargs)

    def warning(self, msg, *args, **kwargs):
        self.error_log.warning(msg, *args, **kwargs)

    def info(self, msg, *args, **kwargs):
        self.error_log.info(msg, *args, **kwargs)

    def debug(self, msg, *args, **kwargs):
        self.error_log.debug(msg, *args, **kwargs)

    def exception(self, msg, *args, **kwargs):
        self.error_log.exception(msg, *args, **kwargs)

    def log(self, lvl, msg, *args, **kwargs):
        if isinstance(lvl, str):
            lvl = self.LOG_LEVELS.get(lvl.lower(), logging.INFO)
        self.error_log.log(lvl, msg, *args, **kwargs)

    def atoms(self, environ, timestamp, status, size):
        """ Gets atoms for log formatting.
        """
        atoms = {
            'h': util.remote_host(environ.get('REMOTE_ADDR', '-')),
            'l': '-',
            'u': '-',
            't': self.now(timestamp),
            'r': "%s %s %s" % (environ.get('REQUEST_METHOD', '-'),
                               util.request_uri(environ),
                               environ.get('SERVER_PROTOCOL', '-')),
            's': str(status),
            'm': environ.get('REQUEST_METHOD', '-'),
            'U': environ.get('PATH_INFO', '-'),
            'q': environ.get('QUERY_STRING', ''),
            'H': environ.get('SERVER_PROTOCOL', '-'),
            'b': str(size),
            'B': size,
            'f': environ.get('HTTP_REFERER', '-'),
            'a': environ.get('HTTP_USER_AGENT', '-'),
        }

        # add request headers
        for key, value in environ.items():
            if key.startswith('HTTP_') and isinstance(value, str):
                name = key[5:].replace('_', '-').lower()
                atoms['{%s}i' % name] = value

        return atoms

    def format_access(self, environ, timestamp, status, size):
        """ See http://httpd.apache.org/docs/2.0/logs.html#common
        for format details
        """
        safe_atoms = SafeAtoms(self.atoms(environ, timestamp, status, size))
        return self.cfg.access_log_format % safe_atoms

    def access(self, environ, status, size, timestamp=None):
        if not (self.cfg.accesslog or self.cfg.logconfig):
            return

        try:
            self.access_log.info(self.format_access(environ, timestamp,
                                                    status, size))
        except Exception:
            self.exception("Failed to log access for %s",
                           environ.get('PATH_INFO', '-'))

    def now(self, timestamp=None):
        """ return date in Apache Common Log Format """
        if timestamp is None:
            timestamp = datetime.datetime.now()
        if timestamp.tzinfo is None:
            timestamp = timestamp.astimezone()
        return '[%02d/%s/%04d:%02d:%02d:%02d %s]' % (
            timestamp.day, util.monthname[timestamp.month], timestamp.year,
            timestamp.hour, timestamp.minute, timestamp.second,
            timestamp.strftime('%z'))

    def _get_mapfront_handler(self, log):
        for h in log.handlers:
            if getattr(h, "_mapfront", False):
                return h

    def _set_handler(self, log, output, fmt):
        # remove previous mapfront log handler
        h = self._get_mapfront_handler(log)
        if h:
            log.handlers.remove(h)

        if output is not None:
            if output == "-":
                h = logging.StreamHandler()
            else:
                util.check_is_writeable(output)
                h = logging.FileHandler(output)

            h.setFormatter(fmt)
            h._mapfront = True
            log.addHandler(h)
