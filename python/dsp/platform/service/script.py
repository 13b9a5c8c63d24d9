"""
A platform service for managing and running server-side scripts.  Each resource is a script,
stored as a file in the service's script directory and executed with an external script engine
(node by default).

=====================  =====================================================================
``GET``                list the available script identifiers
``GET id``             return the script's body as ``{"script_id", "script_body"}``
``PUT id``             save the ``script_body`` given in the payload as the script
``DELETE id``          remove the script
``POST id``            run the script, passing it the posted payload as JSON on its standard
                       input; the script's standard output is returned as ``{"response": ...}``
=====================  =====================================================================

The service is configured with the following parameters:

``script_dir``
    (required) the directory where scripts are stored
``extension``
    the file extension of script files (default: ".js")
``engine``
    a mapping describing how to run a script: ``command`` is the command (as a list) that
    the script file path is appended to (default: ``["node"]``); ``timeout`` is the maximum
    number of seconds a script may run (default: 30)
"""
import os, re, json, subprocess
from logging import Logger
from collections.abc import Mapping
from typing import List

from ..exceptions import BadRequest, NotFound, InternalError
from ..request import RequestContext
from ..events import EventHook
from .base import RestService

__all__ = [ "ScriptService" ]

_script_id_re = re.compile(r"^\w[\w\-\.]*$")

DEF_ENGINE = { "command": ["node"], "timeout": 30 }

class ScriptService(RestService):
    """
    a REST service for storing and running scripts
    """

    def __init__(self, api_name: str, config: Mapping=None, log: Logger=None,
                 events: EventHook=None, svctype: str="script"):
        super(ScriptService, self).__init__(api_name, svctype, config, log, events)
        self.script_dir = self.cfg.get('script_dir')
        self.extension = self.cfg.get('extension', '.js')
        engine = dict(DEF_ENGINE)
        engine.update(self.cfg.get('engine') or {})
        self.engine = engine

    def _script_path(self, script_id: str) -> str:
        if not self.script_dir:
            raise BadRequest("The storage path for scripts has not yet been configured.")
        if not _script_id_re.match(script_id or ''):
            raise BadRequest("Invalid script identifier: " + str(script_id))
        return os.path.join(self.script_dir, script_id + self.extension)

    def _existing_script(self, script_id: str) -> str:
        path = self._script_path(script_id)
        if not os.path.isfile(path):
            raise NotFound('The script "%s" was not found.' % script_id)
        return path

    def list_resources(self, ctx: RequestContext) -> List[str]:
        if not self.script_dir:
            raise BadRequest("The storage path for scripts has not yet been configured.")
        if not os.path.isdir(self.script_dir):
            return []
        return sorted(f[:-len(self.extension)] for f in os.listdir(self.script_dir)
                      if f.endswith(self.extension) and not f.startswith('.'))

    def handle_get(self, ctx: RequestContext):
        path = self._existing_script(ctx.resource)
        with open(path) as fd:
            body = fd.read()
        return { "script_id": ctx.resource, "script_body": body }

    def handle_put(self, ctx: RequestContext):
        path = self._script_path(ctx.resource)
        body = ctx.payload.get('script_body')
        if not body:
            raise BadRequest('You must supply a "script_body".')
        sid = ctx.payload.get('script_id')
        if sid and sid != ctx.resource:
            raise BadRequest('The "script_id" does not match the script addressed: %s' % sid)

        if not os.path.isdir(self.script_dir):
            os.makedirs(self.script_dir)
        with open(path, 'w') as fd:
            fd.write(body)
        self.log.info("Saved script %s", ctx.resource)
        return { "script_id": ctx.resource, "script_body": body }

    def handle_delete(self, ctx: RequestContext):
        path = self._existing_script(ctx.resource)
        os.remove(path)
        self.log.info("Deleted script %s", ctx.resource)
        return { "script_id": ctx.resource }

    def handle_post(self, ctx: RequestContext):
        path = self._existing_script(ctx.resource)
        cmd = list(self.engine.get('command') or [])
        if isinstance(self.engine.get('command'), str):
            cmd = [self.engine['command']]
        if not cmd:
            raise InternalError("This system does not support server-side scripts.")
        cmd.append(path)

        try:
            proc = subprocess.run(cmd, input=json.dumps(dict(ctx.payload)), capture_output=True,
                                  text=True, timeout=self.engine.get('timeout'),
                                  cwd=self.script_dir)
        except FileNotFoundError as ex:
            raise InternalError("This system does not support server-side scripts.", cause=ex)
        except subprocess.TimeoutExpired as ex:
            raise InternalError("Script %s did not finish within %s seconds" %
                                (ctx.resource, self.engine.get('timeout')), cause=ex)

        if proc.returncode != 0:
            self.log.error("Script %s failed with exit code %d", ctx.resource, proc.returncode)
            raise InternalError("Exception executing script %s" % ctx.resource,
                                context={ "exit_code": proc.returncode, "stderr": proc.stderr })
        return { "response": proc.stdout }
