"""
Utilities for obtaining a configuration for DSP services and for setting up logging.

Configurations are plain (nested) dictionaries, typically read from a YAML or JSON file.  Services
receive the portion of the configuration relevant to them and merge in their own defaults via
:py:func:`merge_config`.
"""
import os, sys, logging, json, re
from collections.abc import Mapping
from copy import deepcopy

import yaml, requests

from . import DSPException

__all__ = ["ConfigurationException", "merge_config", "load_from_file", "resolve_configuration",
           "configure_log", "NORMAL", "global_logdir", "global_logfile"]

NORMAL = 25
logging.addLevelName(NORMAL, "NORMAL")

global_logdir = None
global_logfile = None

_log_handler = None
_stderr_handler = None

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

class ConfigurationException(DSPException):
    """
    a class indicating an error in the configuration of a DSP service
    """
    def __init__(self, message=None, cause=None, sys=None):
        if not message:
            message = "Configuration error"
        super(ConfigurationException, self).__init__(message, cause, sys)

def merge_config(primary: Mapping, defconf: Mapping) -> Mapping:
    """
    merge the data from a primary configuration with a default configuration.  Values in the
    primary override those in the default; nested dictionaries are merged recursively.  A new
    dictionary is returned; neither input is modified.

    :param Mapping primary:  the configuration whose values take precedence
    :param Mapping defconf:  the configuration providing default values
    """
    out = deepcopy(defconf) if defconf else {}
    if not primary:
        return out
    for key, val in primary.items():
        if isinstance(val, Mapping) and isinstance(out.get(key), Mapping):
            out[key] = merge_config(val, out[key])
        else:
            out[key] = deepcopy(val)
    return out

def load_from_file(configfile: str) -> Mapping:
    """
    read the configuration from the given file and return it as a dictionary.  The file name
    extension is used to determine its format: files ending in ``.json`` are read as JSON;
    all others are read as YAML.

    :raises ConfigurationException:  if the file cannot be read or parsed
    """
    try:
        with open(configfile) as fd:
            if configfile.endswith('.json'):
                out = json.load(fd)
            else:
                out = yaml.safe_load(fd)
    except (IOError, OSError) as ex:
        raise ConfigurationException("Unable to read config file, %s: %s" % (configfile, str(ex)),
                                     cause=ex)
    except (ValueError, yaml.YAMLError) as ex:
        raise ConfigurationException("%s: config file format error: %s" % (configfile, str(ex)),
                                     cause=ex)

    if out is None:
        out = {}
    if not isinstance(out, Mapping):
        raise ConfigurationException("%s: config data is not an object" % configfile)
    return out

def resolve_configuration(location: str) -> Mapping:
    """
    retrieve the configuration from the given location, which can be a file path, a ``file:`` URL,
    or an ``http:``/``https:`` URL.  Remote configurations must be in JSON or YAML format.
    """
    if location.startswith("file:"):
        location = re.sub(r'^file:(//)?', '', location)

    if not re.match(r'^https?:', location):
        return load_from_file(location)

    try:
        resp = requests.get(location, timeout=30)
    except requests.RequestException as ex:
        raise ConfigurationException("Failed to retrieve configuration from %s: %s" %
                                     (location, str(ex)), cause=ex)
    if resp.status_code >= 300:
        raise ConfigurationException("Failed to retrieve configuration from %s: %s %s" %
                                     (location, resp.status_code, resp.reason))
    try:
        if location.endswith('.json') or 'json' in resp.headers.get('content-type', ''):
            out = resp.json()
        else:
            out = yaml.safe_load(resp.text)
    except (ValueError, yaml.YAMLError) as ex:
        raise ConfigurationException("%s: config format error: %s" % (location, str(ex)), cause=ex)

    if not isinstance(out, Mapping):
        raise ConfigurationException("%s: config data is not an object" % location)
    return out

def configure_log(logfile: str=None, level: int=None, format: str=None, config: Mapping=None,
                  addstderr=False):
    """
    configure the root logger to send messages to a file.  The parameters can be set
    explicitly or taken from the configuration:

    ``logfile``
        the name of the log file; if relative, it is taken to be relative to ``logdir``
    ``logdir``
        the directory where log files should be written (default: ``working_dir``, then the
        current directory)
    ``loglevel``
        the minimum level of messages to record (a name like "DEBUG" or a number)

    :param bool addstderr:  if True, messages of level WARNING and above will also be sent to
                            standard error.
    """
    global global_logdir, global_logfile, _log_handler, _stderr_handler
    if not config:
        config = {}

    if not logfile:
        logfile = config.get('logfile', 'dsp.log')
    if not os.path.isabs(logfile):
        logdir = config.get('logdir', config.get('working_dir', os.getcwd()))
        logfile = os.path.join(logdir, logfile)
    global_logdir = os.path.dirname(logfile)
    global_logfile = logfile

    if level is None:
        level = config.get('loglevel', NORMAL)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ConfigurationException("Unrecognized loglevel value: " + str(config.get('loglevel')))
    if not format:
        format = config.get('logformat', LOG_FORMAT)

    rootlog = logging.getLogger()
    if _log_handler:
        rootlog.removeHandler(_log_handler)
        _log_handler.close()

    _log_handler = logging.FileHandler(logfile)
    _log_handler.setLevel(level)
    _log_handler.setFormatter(logging.Formatter(format))
    rootlog.addHandler(_log_handler)
    rootlog.setLevel(min(level, rootlog.level or level))

    if addstderr and not _stderr_handler:
        _stderr_handler = logging.StreamHandler(sys.stderr)
        _stderr_handler.setLevel(logging.WARNING)
        _stderr_handler.setFormatter(logging.Formatter(format))
        rootlog.addHandler(_stderr_handler)

    rootlog.log(NORMAL, "Logging configured to %s", logfile)
