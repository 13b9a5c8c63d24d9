"""
the uWSGI script for launching the DSP platform services.

This script launches the web service using uwsgi.  For example, one can
launch the service with the following command:

  uwsgi --plugin python3 --http-socket :9090 --wsgi-file dsp-uwsgi.py     \
        --set-ph dsp_config_file=dsp_conf.yml --set-ph dsp_working_dir=_test

The configuration data can be provided to this script via a local file or a URL (see
dsp.base.config.resolve_configuration).  See the documentation for dsp.platform.wsgi for the
configuration parameters supported by this service.

This script also pays attention to the following environment variables:

   DSP_CONFIG_FILE     The location of the configuration file (or URL); this is
                          overridden by the dsp_config_file uwsgi variable.
   DSP_MONGODB_URL     The URL of the MongoDB database to use for any service
                          whose store is configured with type "mongo" but without
                          a db_url.
"""
import os, sys, logging

import uwsgi

import dsp.platform
from dsp.base import config
from dsp.platform import wsgi

def _dec(obj):
    # decode an object if it is not None
    return obj.decode() if isinstance(obj, (bytes, bytearray)) else obj

# determine where the configuration is coming from
confsrc = _dec(uwsgi.opt.get("dsp_config_file")) or os.environ.get("DSP_CONFIG_FILE")
if not confsrc:
    raise config.ConfigurationException("dsp: configuration not provided")
cfg = config.resolve_configuration(confsrc)

workdir = _dec(uwsgi.opt.get("dsp_working_dir"))
if workdir:
    cfg['working_dir'] = workdir

if uwsgi.opt.get("dsp_log_file"):
    cfg["logfile"] = _dec(uwsgi.opt.get("dsp_log_file"))

config.configure_log(config=cfg)

# fill in the database URL for mongo-backed services that do not set one
dburl = os.environ.get("DSP_MONGODB_URL")
if dburl:
    for svccfg in cfg.get('services', []):
        store = svccfg.get('store', {})
        if store.get('type') == "mongo" and not store.get('db_url'):
            store['db_url'] = dburl

# script directories are relative to the working directory
wdir = cfg.get('working_dir', '.')
for svccfg in cfg.get('services', []):
    if svccfg.get('type') == "script" and svccfg.get('script_dir') and \
       not os.path.isabs(svccfg['script_dir']):
        svccfg['script_dir'] = os.path.join(wdir, svccfg['script_dir'])

application = wsgi.app(cfg)

msg = "DSP platform services (v%s) ready: %s" % \
      (dsp.platform.system.system_version, ", ".join(sorted(application.services.keys())))
print(msg)
logging.info(msg)
