# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.


class ConfigError(Exception):
    """ Exception raised on config error """


class MalformedRequest(ValueError):
    """ The request parameters could not be decoded """

    def __init__(self, field, reason):
        self.field = field
        self.reason = reason
        super().__init__(field, reason)

    def __str__(self):
        return "Malformed request parameter %r: %s" % (self.field, self.reason)


class GatewayError(Exception):
    """ The renderer output could not be turned into a response """
