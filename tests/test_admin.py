import unittest

from app.core.settings import Settings
from app.services.admin import AdminResolver


class TestAdminResolver(unittest.TestCase):
    def test_matches_normalized_identity(self):
        admin = AdminResolver(Settings(admin_email=" Owner@Example.com "))
        self.assertTrue(admin.is_admin("owner@example.com"))
        self.assertTrue(admin.is_admin("  OWNER@example.COM"))

    def test_other_identities_are_not_admin(self):
        admin = AdminResolver(Settings(admin_email="owner@example.com"))
        self.assertFalse(admin.is_admin("reader@example.com"))
        self.assertFalse(admin.is_admin(""))
        self.assertFalse(admin.is_admin(None))

    def test_unconfigured_admin_disables_capability(self):
        admin = AdminResolver(Settings(admin_email=""))
        self.assertFalse(admin.has_admin_identity_configured)
        self.assertFalse(admin.is_admin(""))
        self.assertFalse(admin.is_admin("owner@example.com"))

    def test_whitespace_only_admin_is_unconfigured(self):
        admin = AdminResolver(Settings(admin_email="   "))
        self.assertFalse(admin.has_admin_identity_configured)
        self.assertFalse(admin.is_admin("   "))

    def test_status_never_echoes_configured_address(self):
        admin = AdminResolver(Settings(admin_email="owner@example.com"))
        status = admin.status("someone@example.com")
        self.assertEqual(status, {"ok": True, "hasAdminEmail": True, "isAdmin": False})
        self.assertNotIn("owner@example.com", repr(status))

    def test_status_for_admin(self):
        admin = AdminResolver(Settings(admin_email="owner@example.com"))
        self.assertEqual(admin.status("Owner@example.com")["isAdmin"], True)
