"""
Resolution of a request path (relative to a service) into the sub-resource and record
identifier(s) it addresses.
"""
from collections import namedtuple
from typing import List

from . import SCHEMA_RESOURCE

__all__ = [ "ResourcePath", "resolve_path", "split_ids" ]

ResourcePath = namedtuple("ResourcePath",
                          ["path", "resource", "resource_id", "ids", "is_array", "subpath", "is_schema"])
ResourcePath.__doc__ = """
a request path resolved into its parts

``path``
    the normalized path (without leading, trailing, or repeated slashes)
``resource``
    the sub-resource name (the first path segment); an empty string means the service itself
    is being addressed (i.e. the request is for the list of its resources)
``resource_id``
    the second path segment exactly as given, or None if not present
``ids``
    the identifier(s) in ``resource_id`` as a list; it has more than one element when
    ``resource_id`` is a comma-delimited list
``is_array``
    True if ``resource_id`` was given as a comma-delimited list
``subpath``
    a tuple of any path segments that follow the resource id
``is_schema``
    True if the sub-resource is the schema-description sentinel
"""

def split_ids(ids) -> List[str]:
    """
    return a list of identifiers given either as a comma-delimited string or a list.
    Whitespace is trimmed and empty values are dropped.
    """
    if ids is None:
        return []
    if isinstance(ids, str):
        ids = ids.split(',')
    elif not isinstance(ids, (list, tuple)):
        ids = [ids]
    return [i.strip() if isinstance(i, str) else i for i in ids
            if not isinstance(i, str) or i.strip()]

def resolve_path(path: str, schema_resource: str=SCHEMA_RESOURCE) -> ResourcePath:
    """
    split a request path into the resource and record identifiers it refers to.

    >>> resolve_path("widgets/1,2,3")
    ResourcePath(path='widgets/1,2,3', resource='widgets', resource_id='1,2,3', ids=['1', '2', '3'], is_array=True, subpath=(), is_schema=False)

    :param str path:  the path, relative to the service's base path
    :param str schema_resource:  the name of the sub-resource that requests a schema description
                                 (compared case-sensitively)
    """
    parts = [p for p in (path or '').split('/') if p]
    if not parts:
        return ResourcePath('', '', None, [], False, (), False)

    resource = parts[0]
    resid = None
    ids = []
    if len(parts) > 1:
        resid = parts[1]
        ids = split_ids(resid)

    return ResourcePath('/'.join(parts), resource, resid, ids, ',' in (resid or ''),
                        tuple(parts[2:]), resource == schema_resource)
