import os, sys, pdb, json, logging, tempfile, time
import unittest as test
from io import BytesIO
from copy import deepcopy

import jwt, yaml

from dsp.platform import wsgi
from dsp.platform.service import RestService
from dsp.platform.service.user import hash_password
from dsp.base.config import ConfigurationException

tmpdir = tempfile.TemporaryDirectory(prefix="_test_wsgi.")
loghdlr = None
rootlog = None
def setUpModule():
    global loghdlr
    global rootlog
    rootlog = logging.getLogger()
    loghdlr = logging.FileHandler(os.path.join(tmpdir.name,"test_wsgi.log"))
    loghdlr.setLevel(logging.DEBUG)
    rootlog.addHandler(loghdlr)

def tearDownModule():
    global loghdlr
    if loghdlr:
        if rootlog:
            rootlog.removeHandler(loghdlr)
            loghdlr.flush()
            loghdlr.close()
        loghdlr = None
    tmpdir.cleanup()

secret = "goobersecret"
public = { "name": "public", "services": [{ "service": "*", "access": "Full Access" }] }
readers = { "name": "readers", "services": [{ "service": "db", "access": "Read Only" }] }

testdata = {
    "widgets": [
        { "id": 1, "name": "gurn", "color": "red", "size": 3 },
        { "id": 2, "name": "goob", "color": "blue", "size": 1 },
        { "id": 3, "name": "gomer", "color": "red", "size": 2 }
    ]
}

baseconfig = {
    "base_ep": "/api/v2/",
    "include_headers": { "X-Served-By": "dsp" },
    "services": [
        { "api_name": "db", "type": "db", "store": { "data": testdata } },
        { "api_name": "push", "type": "push", "provider": { "topics": ["alerts"] } },
        { "api_name": "old", "type": "db", "is_active": False }
    ]
}

def make_token(claims, lifetime=600):
    claims = dict(claims)
    claims['exp'] = int(time.time()) + lifetime
    return jwt.encode(claims, secret, algorithm="HS256")

class BrokenService(RestService):

    def handle_get(self, ctx):
        raise RuntimeError("gears are stuck")

class WSGITestCase(test.TestCase):

    def start(self, status, headers=None, extup=None):
        self.resp.append(status)
        for head in headers:
            self.resp.append("{0}: {1}".format(head[0], head[1]))

    def body2data(self, body):
        return json.loads("\n".join([e.decode() for e in body]))

    def body2text(self, body):
        return "".join([e.decode() for e in body])

    def request(self, meth, path, body=None, query="", headers=None):
        env = { 'REQUEST_METHOD': meth, 'PATH_INFO': path, 'QUERY_STRING': query }
        if body is not None:
            if not isinstance(body, str):
                body = json.dumps(body)
            body = body.encode('utf-8')
            env['wsgi.input'] = BytesIO(body)
            env['CONTENT_LENGTH'] = str(len(body))
        if headers:
            env.update(headers)
        return self.app(env, self.start)

    def setUp(self):
        self.resp = []

class TestPlatformAppCtor(test.TestCase):

    def test_ctor(self):
        app = wsgi.app(deepcopy(baseconfig))
        self.assertEqual(app.base_ep, "/api/v2/")
        self.assertEqual(sorted(app.services), ["db", "old", "push"])
        self.assertEqual(sorted(app.svcapps), ["", "db", "push"])
        self.assertTrue(isinstance(app.svcapps['db'], wsgi.PlatformServiceApp))
        self.assertTrue(isinstance(app.svcapps[''], wsgi.ServiceListApp))
        self.assertIs(app.services['db'].events, app.events)

        app = wsgi.PlatformApp(deepcopy(baseconfig), "/dsp")
        self.assertEqual(app.base_ep, "/dsp/")

    def test_bad_config(self):
        with self.assertRaises(ConfigurationException):
            wsgi.PlatformApp({})
        with self.assertRaises(ConfigurationException):
            wsgi.PlatformApp({ "services": [{ "api_name": "db" }, { "api_name": "db" }] })
        with self.assertRaises(ConfigurationException):
            wsgi.PlatformApp({ "services": [{ "api_name": "db", "type": "file" }] })
        with self.assertRaises(ConfigurationException):
            wsgi.PlatformApp({ "services": [{ "api_name": "db" }], "authentication": "jwt" })

    def test_prebuilt_services(self):
        svc = BrokenService("gears", "test")
        app = wsgi.PlatformApp({}, services={ "gears": svc })
        self.assertIs(app.services['gears'], svc)
        self.assertIn("gears", app.svcapps)

    def test_user_session_config(self):
        cfg = { "services": [{ "api_name": "user", "type": "user" }],
                "authentication": { "key": secret } }
        app = wsgi.PlatformApp(cfg)
        self.assertEqual(app.services['user'].sessions.secret, secret)
        self.assertNotIn("session", cfg['services'][0])

class TestPlatformApp(WSGITestCase):

    def setUp(self):
        self.resp = []
        cfg = deepcopy(baseconfig)
        cfg['anonymous_role'] = public
        self.app = wsgi.app(cfg)

    def test_service_list(self):
        body = self.request("GET", "/api/v2")
        self.assertIn("200 ", self.resp[0])
        data = self.body2data(body)
        self.assertEqual([s['api_name'] for s in data['resource']], ["db", "push"])
        self.assertEqual(data['resource'][0]['type'], "db")
        self.assertEqual(data['resource'][1]['verbs'], ["GET", "POST", "PUT"])

        self.resp = []
        body = self.request("OPTIONS", "/api/v2/")
        self.assertIn("200 ", self.resp[0])
        self.assertIn("Allow: GET, HEAD, OPTIONS", self.resp)

    def test_unknown_service(self):
        body = self.request("GET", "/api/v2/goober/widgets")
        self.assertIn("404 ", self.resp[0])
        self.assertEqual(self.body2data(body)['error'],
                         { "kind": "NotFound", "code": 404, "message": 'Service "goober" not found.' })

        # inactive services are not available
        self.resp = []
        body = self.request("GET", "/api/v2/old/widgets")
        self.assertIn("404 ", self.resp[0])

        self.resp = []
        self.request("GET", "/api")
        self.assertIn("403 ", self.resp[0])
        self.resp = []
        self.request("GET", "/goob/v2/db")
        self.assertIn("404 ", self.resp[0])

    def test_get(self):
        body = self.request("GET", "/api/v2/db/widgets/1")
        self.assertIn("200 ", self.resp[0])
        self.assertIn("Content-Type: application/json", self.resp)
        self.assertIn("X-Served-By: dsp", self.resp)
        self.assertEqual(self.body2data(body), testdata['widgets'][0])

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets", query="filter=%7B%22color%22%3A%22red%22%7D&fields=name")
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(self.body2data(body),
                         { "record": [{ "id": 1, "name": "gurn" }, { "id": 3, "name": "gomer" }] })

        self.resp = []
        body = self.request("GET", "/api/v2/db")
        self.assertEqual([r['name'] for r in self.body2data(body)['resource']], ["widgets"])

        self.resp = []
        body = self.request("HEAD", "/api/v2/db/widgets/1")
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(body, [])

    def test_formats(self):
        body = self.request("GET", "/api/v2/db/widgets", query="format=yaml&order=id")
        self.assertIn("200 ", self.resp[0])
        self.assertIn("Content-Type: application/x-yaml", self.resp)
        data = yaml.safe_load(self.body2text(body))
        self.assertEqual(data['record'][1]['name'], "goob")

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets", query="order=id",
                            headers={ "HTTP_ACCEPT": "text/csv" })
        self.assertIn("200 ", self.resp[0])
        self.assertIn("Content-Type: text/csv", self.resp)
        lines = self.body2text(body).splitlines()
        self.assertEqual(lines[0], "id,name,color,size")
        self.assertEqual(lines[1], "1,gurn,red,3")
        self.assertEqual(len(lines), 4)

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets", query="format=goob")
        self.assertIn("400 ", self.resp[0])
        self.assertEqual(self.body2data(body)['error']['kind'], "BadRequest")

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets", headers={ "HTTP_ACCEPT": "image/png" })
        self.assertIn("406 ", self.resp[0])

    def test_unsupported_format_prevents_write(self):
        self.request("POST", "/api/v2/db/widgets", { "id": 4 }, query="format=goob")
        self.assertIn("400 ", self.resp[0])

        self.resp = []
        self.request("GET", "/api/v2/db/widgets/4")
        self.assertIn("404 ", self.resp[0])

    def test_post(self):
        body = self.request("POST", "/api/v2/db/widgets", { "id": 4, "name": "bob" })
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(self.body2data(body), { "id": 4 })

        self.resp = []
        body = self.request("POST", "/api/v2/db/widgets", [{ "id": 5 }, { "id": 6 }],
                            query="fields=*")
        self.assertEqual(self.body2data(body), { "record": [{ "id": 5 }, { "id": 6 }] })

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets/4")
        self.assertEqual(self.body2data(body), { "id": 4, "name": "bob" })

    def test_update_and_delete(self):
        body = self.request("PATCH", "/api/v2/db/widgets/2", { "color": "green" },
                            query="fields=color")
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(self.body2data(body), { "id": 2, "color": "green" })

        self.resp = []
        body = self.request("MERGE", "/api/v2/db/widgets/2", { "size": 7 }, query="fields=*")
        self.assertEqual(self.body2data(body)['size'], 7)

        self.resp = []
        body = self.request("POST", "/api/v2/db/widgets/2", { "size": 8 },
                            headers={ "HTTP_X_HTTP_METHOD_OVERRIDE": "put" })
        self.assertIn("200 ", self.resp[0])

        self.resp = []
        body = self.request("DELETE", "/api/v2/db/widgets/1,3")
        self.assertEqual(self.body2data(body), { "record": [{ "id": 1 }, { "id": 3 }] })

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets")
        self.assertEqual(self.body2data(body), { "record": [{ "id": 2, "size": 8 }] })

    def test_errors(self):
        body = self.request("GET", "/api/v2/db/widgets/9")
        self.assertIn("404 Not Found", self.resp[0])
        err = self.body2data(body)['error']
        self.assertEqual(err['kind'], "NotFound")
        self.assertEqual(err['code'], 404)

        self.resp = []
        body = self.request("POST", "/api/v2/db/widgets", "{ goob")
        self.assertIn("400 ", self.resp[0])
        err = self.body2data(body)['error']
        self.assertEqual(err['kind'], "BadRequest")
        self.assertTrue(err['message'].startswith("Input document is not parse-able as JSON"))

        self.resp = []
        body = self.request("POST", "/api/v2/db/widgets", [{ "id": 7 }, { "id": 1 }, { "id": 8 }],
                            query="continue=true")
        self.assertIn("400 ", self.resp[0])
        err = self.body2data(body)['error']
        self.assertEqual(err['context']['errors'], [1])

        self.resp = []
        body = self.request("DELETE", "/api/v2/db/widgets")
        self.assertIn("400 ", self.resp[0])
        self.assertEqual(self.body2data(body)['error']['message'],
                         "No filter or records given for delete request.")

        self.resp = []
        self.request("COPY", "/api/v2/db/widgets")
        self.assertIn("405 ", self.resp[0])

        self.resp = []
        body = self.request("GET", "/api/v2/db/widgets", query="limit=ten")
        self.assertIn("400 ", self.resp[0])
        self.assertEqual(self.body2data(body)['error']['kind'], "BadRequest")

    def test_options(self):
        body = self.request("OPTIONS", "/api/v2/db/widgets",
                            headers={ "HTTP_ORIGIN": "https://example.com" })
        self.assertIn("200 ", self.resp[0])
        self.assertIn("Allow: GET, POST, PUT, PATCH, DELETE, MERGE, HEAD, OPTIONS", self.resp)
        self.assertIn("Access-Control-Allow-Origin: https://example.com", self.resp)

        self.resp = []
        self.request("OPTIONS", "/api/v2/push/alerts")
        self.assertIn("Allow: GET, POST, PUT, HEAD, OPTIONS", self.resp)

    def test_push(self):
        body = self.request("PUT", "/api/v2/push/alerts", { "text": "hello" })
        self.assertIn("200 ", self.resp[0])
        self.assertIn("message_id", self.body2data(body))
        prov = self.app.services['push'].provider
        self.assertEqual(prov.messages['alerts'][0]['message'], { "text": "hello" })

    def test_events(self):
        fired = []
        self.app.events.subscribe(lambda e: fired.append(e), "db.*")
        self.request("POST", "/api/v2/db/widgets", { "id": 4 })
        self.assertIn("200 ", self.resp[0])
        self.assertEqual([e.name for e in fired], ["db.widgets.post"])
        self.assertEqual(fired[0].response, { "id": 4 })

    def test_unexpected_failure(self):
        cfg = deepcopy(baseconfig)
        cfg['anonymous_role'] = public
        self.app = wsgi.PlatformApp(cfg, services={ "gears": BrokenService("gears", "test") })
        body = self.request("GET", "/api/v2/gears/cogs")
        self.assertIn("500 ", self.resp[0])
        err = self.body2data(body)['error']
        self.assertEqual(err['kind'], "InternalError")
        self.assertNotIn("stuck", err['message'])

class TestAuthenticatedPlatformApp(WSGITestCase):

    def setUp(self):
        self.resp = []
        self.cfg = deepcopy(baseconfig)
        self.cfg['authentication'] = { "key": secret }
        self.cfg['services'].append({
            "api_name": "user", "type": "user",
            "store": { "data": { "user": [
                { "id": "u1", "email": "fed@nist.gov", "display_name": "Fed", "role": readers,
                  "password": hash_password("s3cret") }
            ] } }
        })
        self.app = wsgi.app(self.cfg)

    def test_anonymous(self):
        self.assertTrue(self.app.authenticate_user({}).is_anonymous)

        body = self.request("GET", "/api/v2/db/widgets/1")
        self.assertIn("403 ", self.resp[0])
        err = self.body2data(body)['error']
        self.assertEqual(err['kind'], "Forbidden")

        # anyone can see the list of services
        self.resp = []
        self.request("GET", "/api/v2/")
        self.assertIn("200 ", self.resp[0])

    def test_anonymous_role(self):
        self.cfg['anonymous_role'] = readers
        self.app = wsgi.app(self.cfg)
        self.request("GET", "/api/v2/db/widgets/1")
        self.assertIn("200 ", self.resp[0])
        self.resp = []
        self.request("DELETE", "/api/v2/db/widgets/1")
        self.assertIn("403 ", self.resp[0])

        # the anonymous role is not granted to clients presenting bad credentials
        self.resp = []
        self.request("GET", "/api/v2/db/widgets/1",
                     headers={ "HTTP_AUTHORIZATION": "Bearer goober" })
        self.assertIn("403 ", self.resp[0])

    def test_token(self):
        auth = { "HTTP_AUTHORIZATION": "Bearer " + make_token({ "sub": "root",
                                                                "is_sys_admin": True }) }
        self.request("DELETE", "/api/v2/db/widgets/1", headers=auth)
        self.assertIn("200 ", self.resp[0])

        auth = { "HTTP_AUTHORIZATION": "Bearer " + make_token({ "sub": "fed", "role": readers }) }
        self.resp = []
        self.request("GET", "/api/v2/db/widgets/2", headers=auth)
        self.assertIn("200 ", self.resp[0])
        self.resp = []
        self.request("DELETE", "/api/v2/db/widgets/2", headers=auth)
        self.assertIn("403 ", self.resp[0])

        auth = { "HTTP_AUTHORIZATION": "Bearer " + make_token({ "sub": "root",
                                                                "is_sys_admin": True }, -60) }
        self.resp = []
        self.request("DELETE", "/api/v2/db/widgets/2", headers=auth)
        self.assertIn("403 ", self.resp[0])

    def test_raise_on_invalid(self):
        self.cfg['authentication']['raise_on_invalid'] = True
        self.app = wsgi.app(self.cfg)
        self.request("GET", "/api/v2/db/widgets/2",
                     headers={ "HTTP_AUTHORIZATION": "Bearer goober" })
        self.assertIn("401 ", self.resp[0])

    def test_login(self):
        body = self.request("POST", "/api/v2/user/session",
                            { "email": "fed@nist.gov", "password": "s3cret" })
        self.assertIn("200 ", self.resp[0])
        session = self.body2data(body)
        self.assertEqual(session['id'], "u1")
        self.assertNotIn("password", session)

        # the session token authenticates later requests
        auth = { "HTTP_AUTHORIZATION": "Bearer " + session['session_token'] }
        self.resp = []
        body = self.request("GET", "/api/v2/user/profile", headers=auth)
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(self.body2data(body)['display_name'], "Fed")

        self.resp = []
        self.request("GET", "/api/v2/db/widgets/1", headers=auth)
        self.assertIn("200 ", self.resp[0])

        self.resp = []
        body = self.request("GET", "/api/v2/user/session", query="ticket="+session['ticket'])
        self.assertIn("200 ", self.resp[0])
        self.assertEqual(self.body2data(body)['email'], "fed@nist.gov")

        self.resp = []
        body = self.request("POST", "/api/v2/user/session",
                            { "email": "fed@nist.gov", "password": "goob" })
        self.assertIn("401 ", self.resp[0])
        self.assertEqual(self.body2data(body)['error']['kind'], "Unauthorized")


if __name__ == '__main__':
    test.main()
