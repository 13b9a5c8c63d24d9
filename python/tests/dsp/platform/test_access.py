import os, sys, pdb, json, logging
import unittest as test

from dsp.platform import access as acc
from dsp.platform.access import Identity

role = {
    "name": "staff",
    "services": [
        { "service": "db", "component": "*", "access": "Read Only" },
        { "service": "db", "component": "widgets", "access": "Full Access" },
        { "service": "db", "component": "secrets", "access": "No Access" },
        { "service": "push", "component": "", "access": "Write Only" },
        { "service": "*", "access": "Read Only" }
    ]
}

class TestIdentity(test.TestCase):

    def test_anonymous(self):
        who = Identity.anonymous()
        self.assertEqual(who.user_id, "anonymous")
        self.assertTrue(who.is_anonymous)
        self.assertTrue(who.is_valid)
        self.assertFalse(who.is_sys_admin)
        self.assertIsNone(who.role)
        self.assertEqual(who.services, [])

        who = Identity.anonymous("expired token")
        self.assertTrue(who.is_anonymous)
        self.assertFalse(who.is_valid)
        self.assertEqual(who.invalid_reason, "expired token")

    def test_user(self):
        who = Identity("fed", False, role, "fed@nist.gov", "Fed", OU="61")
        self.assertEqual(who.user_id, "fed")
        self.assertFalse(who.is_anonymous)
        self.assertEqual(who.email, "fed@nist.gov")
        self.assertEqual(who.display_name, "Fed")
        self.assertEqual(len(who.services), 5)
        self.assertEqual(who.get_prop("OU"), "61")
        self.assertIsNone(who.get_prop("goob"))
        self.assertEqual(str(who), "Identity(fed)")

        self.assertEqual(who.to_claims(), { "sub": "fed", "is_sys_admin": False, "role": role,
                                            "email": "fed@nist.gov", "name": "Fed" })

    def test_admin(self):
        self.assertTrue(Identity("root", True).is_sys_admin)
        self.assertEqual(str(Identity("root", True)), "Identity(root, admin)")
        self.assertFalse(Identity(None, True).is_sys_admin)
        self.assertFalse(Identity("root", True, invalid_reason="bad token").is_sys_admin)

class TestAccessFuncs(test.TestCase):

    def setUp(self):
        self.who = Identity("fed", role=role)

    def test_convert_access_to_verbs(self):
        self.assertEqual(acc.convert_access_to_verbs("Read Only"), ["GET"])
        self.assertEqual(acc.convert_access_to_verbs("Write Only"), ["POST"])
        self.assertEqual(acc.convert_access_to_verbs("Read and Write"),
                         ["GET", "POST", "PUT", "PATCH"])
        self.assertEqual(acc.convert_access_to_verbs("Full Access"),
                         ["GET", "POST", "PUT", "PATCH", "DELETE"])
        self.assertEqual(acc.convert_access_to_verbs("No Access"), [])

    def test_is_allowed(self):
        verbs = ["GET", "PATCH"]
        self.assertTrue(acc.is_allowed("get", verbs))
        self.assertTrue(acc.is_allowed("read", verbs))
        self.assertTrue(acc.is_allowed("MERGE", verbs))
        self.assertFalse(acc.is_allowed("POST", verbs))
        self.assertFalse(acc.is_allowed("create", verbs))
        self.assertFalse(acc.is_allowed("goob", verbs))
        self.assertFalse(acc.is_allowed(None, verbs))

    def test_get_service_access(self):
        self.assertIs(acc.get_service_access(None, "db"), True)
        self.assertIs(acc.get_service_access(Identity("root", True), "db"), True)

        self.assertEqual(acc.get_service_access(self.who, "db", "widgets")['access'], "Full Access")
        self.assertEqual(acc.get_service_access(self.who, "DB", "Widgets")['access'],
                         "Full Access")
        self.assertEqual(acc.get_service_access(self.who, "db", "gadgets")['access'], "Read Only")
        self.assertEqual(acc.get_service_access(self.who, "push")['access'], "Write Only")
        self.assertEqual(acc.get_service_access(self.who, "files")['service'], "*")
        self.assertFalse(acc.get_service_access(Identity("fed"), "db"))

    def test_get_service_permissions(self):
        self.assertEqual(acc.get_service_permissions(self.who, "db", "widgets"),
                         ["GET", "POST", "PUT", "PATCH", "DELETE"])
        self.assertEqual(acc.get_service_permissions(self.who, "db", "gadgets"), ["GET"])
        self.assertEqual(acc.get_service_permissions(self.who, "db", "secrets"), [])
        self.assertEqual(acc.get_service_permissions(None, "db", "secrets"),
                         ["GET", "POST", "PUT", "PATCH", "DELETE"])
        self.assertEqual(acc.get_service_permissions(Identity.anonymous(), "db"), [])

    def test_evaluate_service_access(self):
        self.assertEqual(acc.evaluate_service_access(None, "DELETE", "db", "widgets"), (True, None))
        self.assertEqual(acc.evaluate_service_access(Identity("root", True), "DELETE", "db"),
                         (True, None))

        self.assertEqual(acc.evaluate_service_access(self.who, "DELETE", "db", "widgets"),
                         (True, None))
        self.assertEqual(acc.evaluate_service_access(self.who, "GET", "db", "gadgets"),
                         (True, None))
        self.assertEqual(acc.evaluate_service_access(self.who, "POST", "push", "alerts"),
                         (True, None))
        self.assertEqual(acc.evaluate_service_access(self.who, "GET", "files", "docs"),
                         (True, None))

        ok, msg = acc.evaluate_service_access(self.who, "POST", "db", "gadgets")
        self.assertFalse(ok)
        self.assertEqual(msg, "POST access to component 'gadgets' of service 'db' is not "
                              "allowed by this user's role.")

        # a component-specific entry is decisive
        ok, msg = acc.evaluate_service_access(self.who, "GET", "db", "secrets")
        self.assertFalse(ok)

        # a service-wide entry overrides an all-services entry
        ok, msg = acc.evaluate_service_access(self.who, "GET", "push", "alerts")
        self.assertFalse(ok)

        ok, msg = acc.evaluate_service_access(self.who, "PUT", "files")
        self.assertFalse(ok)
        self.assertEqual(msg, "PUT access to service 'files' is not allowed by this user's role.")

        ok, msg = acc.evaluate_service_access(Identity.anonymous(), "GET", "db", "widgets")
        self.assertFalse(ok)
        self.assertEqual(msg, "A valid user role or system administrator is required to access "
                              "services.")


if __name__ == '__main__':
    test.main()
