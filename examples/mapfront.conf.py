# Sample mapfront configuration.
#
#   $ mapfront -c examples/mapfront.conf.py

bind = "127.0.0.1:8080"
workers = 2
threads = 4

mapserv = "/usr/bin/mapserv"
directory = "."

maps = [
    {
        "name": "world",
        "projections": ["3857", "4326"],
        "aliases": {
            "3857": ["900913", "102100", "102113"],
        },
    },
    {
        "name": "roads",
        "projections": ["2056"],
        "path": "/wms/roads",
    },
]

loglevel = "info"
accesslog = "-"
