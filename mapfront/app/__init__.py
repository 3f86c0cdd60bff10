# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.
