import unittest
from types import SimpleNamespace

from app.core.crypto import secrets_equal
from app.core.normalize import (
    client_ip_from_request,
    is_valid_email,
    mask_mapping,
    normalize_email,
)
from app.core.time import parse_ts


class TestNormalizeEmail(unittest.TestCase):
    def test_normalize_email_strips_and_lowercases(self):
        self.assertEqual(normalize_email("  Test@Example.COM "), "test@example.com")

    def test_normalize_email_is_total(self):
        for value in (None, 42, {"email": "a@b.co"}, ["a@b.co"], b"a@b.co"):
            self.assertEqual(normalize_email(value), "")

    def test_blank_identity_normalizes_to_empty(self):
        self.assertEqual(normalize_email("   "), "")

    def test_normalize_email_is_idempotent(self):
        once = normalize_email(" Mixed.Case@Example.org\t")
        self.assertEqual(normalize_email(once), once)


class TestIsValidEmail(unittest.TestCase):
    def test_accepts_plain_address(self):
        self.assertTrue(is_valid_email("reader@example.com"))

    def test_rejects_malformed(self):
        for value in ("", "no-at-sign", "a@b", "a b@example.com", "@example.com"):
            self.assertFalse(is_valid_email(value), value)

    def test_rejects_overlong(self):
        self.assertFalse(is_valid_email("a" * 250 + "@example.com"))


class TestClientIp(unittest.TestCase):
    def test_client_ip_prefers_forwarded_for(self):
        req = SimpleNamespace(headers={"x-forwarded-for": "203.0.113.1, 10.0.0.1"}, client=None)
        self.assertEqual(client_ip_from_request(req), "203.0.113.1")

    def test_client_ip_falls_back_to_peer(self):
        req = SimpleNamespace(headers={}, client=SimpleNamespace(host="198.51.100.7"))
        self.assertEqual(client_ip_from_request(req), "198.51.100.7")


class TestMasking(unittest.TestCase):
    def test_mask_mapping_hides_credential_like_keys(self):
        masked = mask_mapping({"x-webhook-secret": "supersecretvalue", "content-type": "application/json"})
        self.assertEqual(masked["content-type"], "application/json")
        self.assertNotEqual(masked["x-webhook-secret"], "supersecretvalue")
        self.assertTrue(masked["x-webhook-secret"].startswith("supe"))

    def test_short_values_keep_only_prefix(self):
        self.assertEqual(mask_mapping({"token": "abc123"})["token"], "ab***")


class TestSecretsEqual(unittest.TestCase):
    def test_matching_secrets(self):
        self.assertTrue(secrets_equal("s3cret", "s3cret"))

    def test_empty_never_matches(self):
        self.assertFalse(secrets_equal("", ""))
        self.assertFalse(secrets_equal("", "s3cret"))

    def test_mismatch(self):
        self.assertFalse(secrets_equal("s3cret", "S3cret"))


class TestParseTs(unittest.TestCase):
    def test_epoch_values(self):
        self.assertEqual(parse_ts(1700000000), 1700000000)
        self.assertEqual(parse_ts("1700000000"), 1700000000)

    def test_iso_values(self):
        self.assertEqual(parse_ts("2023-11-14T22:13:20Z"), 1700000000)
        self.assertEqual(parse_ts("2023-11-14T22:13:20"), 1700000000)

    def test_garbage_is_none(self):
        for value in (None, "", "next tuesday", True, "²", "٣"):
            self.assertIsNone(parse_ts(value))
