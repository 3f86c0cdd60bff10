# -*- coding: utf-8 -
#
# This file is part of mapfront released under the MIT license.
# See the NOTICE for more information.

"""\
Map definitions and the SRS to mapfile resolution rules.

A map is served from one URL path and owns one default mapfile
(``<name>.map``) plus one mapfile per dedicated projection
(``<name>_<id>.map``). Requested SRS tokens are first resolved through
the map's alias table, then matched against its projections.
"""

from mapfront.errors import ConfigError


def url_path(name, path=None):
    """ normalize a map path so it starts and ends with a slash """
    p = path or name
    if not p.startswith("/"):
        p = "/" + p
    if not p.endswith("/"):
        p = p + "/"
    return p


class MapDefinition(object):
    """\
    A map registered with the front-end.

    Instances are read-only once built: they are shared by every request
    served by a worker.
    """

    def __init__(self, name, projections=None, aliases=None, path=None):
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("Map name must be a non empty string: %r" % name)
        name = name.strip()

        if isinstance(projections, str):
            projections = [projections]
        projections = tuple(str(p) for p in (projections or ()))
        seen = set()
        for p in projections:
            if not p:
                raise ConfigError("Map %r has an empty projection" % name)
            if p in seen:
                raise ConfigError("Map %r lists projection %r twice" % (name, p))
            seen.add(p)

        if aliases is None:
            aliases = {}
        if not isinstance(aliases, dict):
            raise ConfigError("Aliases of map %r must be a dictionary" % name)
        alias_items = []
        for projection, tokens in aliases.items():
            if isinstance(tokens, str):
                tokens = [tokens]
            alias_items.append((str(projection),
                                tuple(str(t) for t in tokens)))

        if path is not None and not isinstance(path, str):
            raise ConfigError("Path of map %r must be a string" % name)

        object.__setattr__(self, "name", name)
        object.__setattr__(self, "projections", projections)
        object.__setattr__(self, "aliases", tuple(alias_items))
        object.__setattr__(self, "path", path or None)
        object.__setattr__(self, "url_path", url_path(name, path))

    @classmethod
    def from_dict(cls, data):
        """\
        Build a map from a configuration mapping. Keys are case
        insensitive, so both ``name`` and ``Name`` are accepted.
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, dict):
            raise ConfigError("Map definition must be a dictionary: %r" % data)

        known = ("name", "projections", "aliases", "path")
        kwargs = {}
        for key, value in data.items():
            lkey = str(key).lower()
            if lkey not in known:
                raise ConfigError("Unknown map setting: %r" % key)
            kwargs[lkey] = value
        if "name" not in kwargs:
            raise ConfigError("Map definition without a name: %r" % data)
        return cls(**kwargs)

    def __setattr__(self, name, value):
        raise AttributeError("Invalid access!")

    def __delattr__(self, name):
        raise AttributeError("Invalid access!")

    def __repr__(self):
        return "<MapDefinition %s at %s>" % (self.name, self.url_path)

    def __eq__(self, other):
        if not isinstance(other, MapDefinition):
            return NotImplemented
        return (self.name, self.projections, self.aliases, self.url_path) == \
            (other.name, other.projections, other.aliases, other.url_path)

    def __hash__(self):
        return hash((self.name, self.projections, self.aliases, self.url_path))

    def resolve(self, token):
        return resolve(self, token)

    def select_mapfile(self, projection):
        return select_mapfile(self, projection)

    def mapfile(self, token):
        """ the mapfile name serving the raw SRS token """
        return select_mapfile(self, resolve(self, token))


def resolve(mapdef, token):
    """\
    Resolve a raw SRS token (``EPSG:900913``) to the canonical
    projection id of mapdef.

    Only the segment after the last colon is considered. Every alias
    entry is matched against that segment in configuration order and the
    last matching entry wins; aliases don't chain. Unknown ids are
    returned unchanged.
    """
    srid = (token or "").split(":")[-1]
    resolved = srid
    for projection, tokens in mapdef.aliases:
        if srid in tokens:
            resolved = projection
    return resolved


def select_mapfile(mapdef, projection):
    if projection in mapdef.projections:
        return "%s_%s.map" % (mapdef.name, projection)
    return "%s.map" % mapdef.name


class MapRegistry(object):
    """ The maps served by an instance, looked up by URL path """

    def __init__(self, maps=None):
        self._maps = []
        self._paths = {}
        for m in maps or ():
            self.add(m)

    def add(self, mapdef):
        mapdef = MapDefinition.from_dict(mapdef)
        if mapdef.url_path in self._paths:
            raise ConfigError("Maps %r and %r are both served at %s" % (
                self._paths[mapdef.url_path].name, mapdef.name,
                mapdef.url_path))
        self._paths[mapdef.url_path] = mapdef
        self._maps.append(mapdef)
        return mapdef

    def __iter__(self):
        return iter(self._maps)

    def __len__(self):
        return len(self._maps)

    def get(self, name):
        for m in self._maps:
            if m.name == name:
                return m
        return None

    def match(self, path):
        """ the map with the longest URL path prefixing path, if any """
        best = None
        for prefix, mapdef in self._paths.items():
            if path.startswith(prefix):
                if best is None or len(prefix) > len(best.url_path):
                    best = mapdef
        return best

    def redirect(self, path):
        """\
        The URL path to redirect to when path only lacks the trailing
        slash of a registered map.
        """
        if path.endswith("/"):
            return None
        target = path + "/"
        if target in self._paths:
            return target
        return None
