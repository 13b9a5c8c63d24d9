"""
Support for content negotiation: choosing the output format for a response based on a format
query parameter and/or the ``Accept`` request header, and rendering response data into the
formats DSP services support (JSON, YAML, and CSV).
"""
import re, json, csv, io
from collections import namedtuple
from collections.abc import Mapping
from typing import List, Iterable

import yaml

from .utils import is_content_type, match_accept, acceptable

__all__ = [ "Format", "FormatSupport", "UnsupportedFormat", "Unacceptable", "JSONSupport",
            "YAMLSupport", "CSVSupport", "PlatformFormatSupport", "render" ]

class UnsupportedFormat(Exception):
    """
    none of the formats requested by the client are supported for the requested resource.  This
    should result in a 400 (Bad Request) response.
    """
    pass

class Unacceptable(Exception):
    """
    the selected format corresponds to a content type that the client said it would not accept.
    This should result in a 406 (Not Acceptable) response.
    """
    pass

Format = namedtuple("Format", ["name", "ctype"])

class FormatSupport(object):
    """
    a registry of the output formats supported by a handler that can select the most appropriate
    one for a client's request.
    """

    def __init__(self):
        self._lu = {}      # format names and content types -> Format
        self._ctps = {}    # format names -> set of content types
        self._deffmt = None

    def support(self, format: Format, cts: Iterable[str]=(), asdefault: bool=False,
                raiseonconflict: bool=False):
        """
        register a format as supported
        :param Format format:  the format (its name and default content type)
        :param cts:   the content types that, when requested, should select this format
        :param bool asdefault:  if True, make this the format returned when the client
                      expresses no preference
        :param bool raiseonconflict:  if True, raise a ValueError if the format or any of the
                      content types are already registered
        """
        cts = list(cts)
        if raiseonconflict:
            if format.name in self._lu:
                raise ValueError("Format already registered as supported: " + format.name)
            taken = [c for c in cts if c in self._lu]
            if taken:
                raise ValueError("Content types already supported by a registered format: " +
                                 str(taken))

        if format.name in self._lu:
            self._lu = dict(i for i in self._lu.items() if i[1].name != format.name)

        for ct in cts:
            self._lu[ct] = format
        self._lu[format.name] = format
        self._ctps[format.name] = set(cts) | {format.ctype}

        if asdefault or not self._deffmt:
            self._deffmt = format

    _wildc_ct_re = re.compile(r'^(\w+)/\*$')

    def match(self, fmtreq: str) -> Format:
        """
        return the supported Format matching a format name or content type, or None if it
        is not supported.
        """
        if fmtreq in ('*', '*/*'):
            return self.default_format()

        m = self._wildc_ct_re.match(fmtreq)
        if m:
            prefix = m.group(1) + '/'
            if self.default_format() and self.default_format().ctype.startswith(prefix):
                return self.default_format()
            for ct in self._lu:
                if ct.startswith(prefix):
                    return self._lu[ct]
            return None

        fmt = self._lu.get(fmtreq)
        if fmt and is_content_type(fmtreq):
            fmt = Format(fmt.name, fmtreq)
        return fmt

    def default_format(self) -> Format:
        """
        the format to return when the client has not indicated a preference
        """
        return self._deffmt

    def select_format(self, formats: List[str], accepts: List[str]) -> Format:
        """
        pick the supported format that best matches the client's request.  Formats requested
        by name (via a query parameter) take precedence over the Accept types, but they must be
        consistent with them when Accept types are given.  None is returned if the client
        gave no preferences.

        :raise UnsupportedFormat:  if none of the requested ``formats`` is supported
        :raise Unacceptable:  if no supported format is consistent with ``accepts``
        """
        if formats:
            inconsistent = False
            for label in formats:
                fmt = self.match(label)
                if not fmt:
                    continue
                if not accepts or '*' in accepts or '*/*' in accepts:
                    return fmt

                if is_content_type(label):
                    mct = acceptable(label, accepts)
                    if mct:
                        if mct.endswith('/*') and match_accept(mct, fmt.ctype):
                            return fmt
                        return Format(fmt.name, mct)
                else:
                    for ct in accepts:
                        mct = acceptable(ct, sorted(self._ctps.get(fmt.name, [])))
                        if mct and not mct.endswith('/*'):
                            return Format(fmt.name, mct)
                inconsistent = True

            if inconsistent:
                raise Unacceptable("format parameter is inconsistent with Accept header")
            raise UnsupportedFormat("Unsupported format requested")

        if accepts:
            for label in accepts:
                fmt = self.match(label)
                if fmt:
                    if is_content_type(label) and not label.endswith('/*'):
                        fmt = Format(fmt.name, label)
                    return fmt
            raise Unacceptable("No given Accept types supported")

        return None

class JSONSupport(FormatSupport):
    """
    support for JSON output
    """
    FMT_JSON = "json"

    def __init__(self):
        super(JSONSupport, self).__init__()
        JSONSupport.add_support(self)

    @classmethod
    def add_support(cls, fmtsup: FormatSupport, asdefault: bool=False):
        fmtsup.support(Format(cls.FMT_JSON, "application/json"), ["application/json"],
                       asdefault, True)

class YAMLSupport(FormatSupport):
    """
    support for YAML output
    """
    FMT_YAML = "yaml"

    def __init__(self):
        super(YAMLSupport, self).__init__()
        YAMLSupport.add_support(self)

    @classmethod
    def add_support(cls, fmtsup: FormatSupport, asdefault: bool=False):
        fmtsup.support(Format(cls.FMT_YAML, "application/x-yaml"),
                       ["application/x-yaml", "application/yaml", "text/yaml"], asdefault, True)

class CSVSupport(FormatSupport):
    """
    support for comma-separated value output (applicable to lists of records)
    """
    FMT_CSV = "csv"

    def __init__(self):
        super(CSVSupport, self).__init__()
        CSVSupport.add_support(self)

    @classmethod
    def add_support(cls, fmtsup: FormatSupport, asdefault: bool=False):
        fmtsup.support(Format(cls.FMT_CSV, "text/csv"), ["text/csv"], asdefault, True)

class PlatformFormatSupport(FormatSupport):
    """
    the formats supported by DSP service responses: JSON (the default), YAML, and CSV
    """
    def __init__(self, default: str="json"):
        super(PlatformFormatSupport, self).__init__()
        JSONSupport.add_support(self, default == JSONSupport.FMT_JSON)
        YAMLSupport.add_support(self, default == YAMLSupport.FMT_YAML)
        CSVSupport.add_support(self, default == CSVSupport.FMT_CSV)

def _records_to_csv(data, envelope: str) -> str:
    if isinstance(data, Mapping):
        data = data.get(envelope, [data])
    if not isinstance(data, list):
        raise UnsupportedFormat("CSV output is only available for record data")

    columns = []
    for rec in data:
        for key in rec:
            if key not in columns:
                columns.append(key)

    out = io.StringIO()
    wrtr = csv.DictWriter(out, fieldnames=columns, lineterminator="\n")
    wrtr.writeheader()
    for rec in data:
        wrtr.writerow({k: (json.dumps(v) if isinstance(v, (dict, list)) else v)
                       for k, v in rec.items()})
    return out.getvalue()

def render(data, format: Format, envelope: str="record") -> str:
    """
    serialize response data into the given format
    :param data:  the JSON-compatible data to render
    :param Format format:  the format to render to
    :param str envelope:  the key under which lists of records are wrapped; for CSV output,
                          records are extracted from this envelope
    :raise UnsupportedFormat:  if the format is not recognized or cannot represent the data
    """
    if format.name == JSONSupport.FMT_JSON:
        return json.dumps(data, indent=2)
    if format.name == YAMLSupport.FMT_YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    if format.name == CSVSupport.FMT_CSV:
        return _records_to_csv(data, envelope)
    raise UnsupportedFormat("Unsupported output format: " + format.name)
