# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

from mapfront.app.base import Application
from mapfront.dispatcher import Dispatcher
from mapfront.glogging import Logger


class MapApplication(Application):

    def load(self):
        if self.logger is None:
            self.logger = Logger(self.cfg)
        return Dispatcher(self.cfg, self.logger)


def run():
    """\
    The ``mapfront`` command line runner for serving the configured
    maps through the renderer.
    """
    MapApplication("%(prog)s [OPTIONS]").run()


if __name__ == '__main__':
    run()
