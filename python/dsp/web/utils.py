"""
functions that assist with processing a web service request, mainly for interpreting the
``Accept`` HTTP request header.
"""
import re
from typing import List, Union, Iterable

__all__ = [ 'is_content_type', 'match_accept', 'acceptable', 'order_accepts' ]

_qval_re = re.compile(r';\s*q=(\d+(\.\d*)?)')

def is_content_type(label: str) -> bool:
    """
    return True if the given format label looks like a MIME content type (i.e. it contains a '/')
    rather than a logical format name.
    """
    return '/' in label

def match_accept(ctype: str, accept: str) -> str:
    """
    compare a content type with an acceptable type, either of which may be a wildcard type
    (e.g. "text/*").  The more specific of the two is returned if they match; otherwise, 
    None is returned.
    """
    if ctype == accept:
        return ctype
    if accept.endswith('/*') and ctype.startswith(accept[:-1]):
        return ctype
    if ctype.endswith('/*') and accept.startswith(ctype[:-1]):
        return accept
    return None

def acceptable(ctype: str, accepts: List[str]) -> str:
    """
    return the first type in a list of acceptable content types that matches the given type.  If
    the list is empty, everything is acceptable and ``ctype`` is returned.
    """
    if not accepts:
        return ctype
    if ctype in ('*', '*/*'):
        return accepts[0]
    for acc in accepts:
        m = match_accept(ctype, acc)
        if m:
            return m
    return None

def order_accepts(accepts: Union[str, Iterable[str]]) -> List[str]:
    """
    parse the value(s) of an HTTP Accept header and return the content types it lists, ordered 
    by their q-values (most preferred first).  Types with a q-value of zero are dropped.  
    :param accepts:  either the header value as a str or a list of such values
    """
    if isinstance(accepts, str):
        accepts = [accepts]

    weighted = []
    for hdrval in accepts:
        for item in hdrval.split(','):
            item = item.strip()
            if not item:
                continue
            q = 1.0
            m = _qval_re.search(item)
            if m:
                q = float(m.group(1))
            weighted.append((item.split(';', 1)[0].strip(), q))

    # sort is stable, so types with equal q-values keep the client's order
    weighted.sort(key=lambda t: t[1], reverse=True)
    return [t[0] for t in weighted if t[1] > 0]
