import unittest
from unittest.mock import Mock, patch

from app.core.settings import Settings
from app.services import cognito as cognito_service
from app.services.cognito import IdentityDirectory


def build_directory(client=None, pool="pool-1"):
    return IdentityDirectory(Settings(cognito_user_pool_id=pool), client=client or Mock())


class TestIdentityDirectory(unittest.TestCase):
    def test_disabled_without_pool(self):
        client = Mock()
        directory = build_directory(client, pool="")
        self.assertIsNone(directory.find_user_id("a@x.com"))
        client.list_users.assert_not_called()

    def test_returns_sub_attribute(self):
        client = Mock()
        client.list_users.return_value = {
            "Users": [{"Username": "alice", "Attributes": [{"Name": "email", "Value": "a@x.com"}, {"Name": "sub", "Value": "sub-1"}]}]
        }
        self.assertEqual(build_directory(client).find_user_id(" A@X.com "), "sub-1")
        kwargs = client.list_users.call_args.kwargs
        self.assertEqual(kwargs["UserPoolId"], "pool-1")
        self.assertEqual(kwargs["Filter"], 'email = "a@x.com"')
        self.assertEqual(kwargs["Limit"], 1)

    def test_falls_back_to_username(self):
        client = Mock()
        client.list_users.return_value = {"Users": [{"Username": "alice", "Attributes": []}]}
        self.assertEqual(build_directory(client).find_user_id("a@x.com"), "alice")

    def test_unknown_user(self):
        client = Mock()
        client.list_users.return_value = {"Users": []}
        self.assertIsNone(build_directory(client).find_user_id("a@x.com"))

    def test_filter_quotes_stripped(self):
        client = Mock()
        client.list_users.return_value = {"Users": []}
        build_directory(client).find_user_id('a"b@x.com')
        self.assertEqual(client.list_users.call_args.kwargs["Filter"], 'email = "ab@x.com"')

    def test_lookup_failure_is_none(self):
        client = Mock()
        client.list_users.side_effect = RuntimeError("throttled")
        with patch.object(cognito_service, "audit_event") as audit:
            self.assertIsNone(build_directory(client).find_user_id("a@x.com"))
        audit.assert_called_once()
