# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

import sys
import traceback

from gunicorn.app.base import BaseApplication

from mapfront import util
from mapfront.config import Config


class Server(BaseApplication):
    """\
    The gunicorn server running a mapfront application. The WSGI
    callable is built lazily, in each worker.
    """

    def __init__(self, app, options=None):
        self.options = options or {}
        self.application = app
        super().__init__()

    def load_config(self):
        for key, value in self.options.items():
            if key in self.cfg.settings and value is not None:
                self.cfg.set(key.lower(), value)

    def load(self):
        return self.application.wsgi()


class Application(object):
    """\
    An application interface for configuring and loading
    the various necessities of a mapfront instance.
    """

    def __init__(self, usage=None, prog=None):
        self.usage = usage
        self.cfg = None
        self.callable = None
        self.prog = prog
        self.logger = None
        self.do_load_config()

    def do_load_config(self):
        try:
            self.load_config()
        except Exception as e:
            print("\nError: %s" % str(e), file=sys.stderr)
            sys.stderr.flush()
            sys.exit(1)

    def load_config_from_file(self, filename):
        cfg = util.load_config_from_filename(filename)
        for k, v in cfg.items():
            # Ignore unknown names
            if k not in self.cfg.settings:
                continue
            try:
                self.cfg.set(k.lower(), v)
            except Exception:
                print("Invalid value for %s: %s\n" % (k, v), file=sys.stderr)
                sys.stderr.flush()
                raise

        return cfg

    def load_config(self, argv=None):
        # init configuration
        self.cfg = Config(self.usage, prog=self.prog)

        # parse console args
        parser = self.cfg.parser()
        args = parser.parse_args(argv)

        # Load up the config file if its found.
        if args.config:
            self.load_config_from_file(args.config)

        # Lastly, update the configuration with any command line settings.
        for k, v in vars(args).items():
            if v is None:
                continue
            self.cfg.set(k.lower(), v)

    def load(self):
        raise NotImplementedError

    def wsgi(self):
        if self.callable is None:
            self.callable = self.load()
        return self.callable

    def run(self):
        if self.cfg.check_config:
            try:
                self.load()
            except Exception:
                msg = "\nError while loading the application:\n"
                print(msg, file=sys.stderr)
                traceback.print_exc()
                sys.stderr.flush()
                sys.exit(1)
            sys.exit(0)

        Server(self, self.cfg.server_options).run()
