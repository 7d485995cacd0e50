import unittest

from app.main import create_app


class TestCreateApp(unittest.TestCase):
    def test_routes_registered(self):
        app = create_app()
        routes = {(route.path, method) for route in app.routes for method in getattr(route, "methods", None) or ()}
        for expected in (
            ("/webhook", "POST"),
            ("/access/status", "POST"),
            ("/access/send-link", "POST"),
            ("/admin/status", "POST"),
            ("/admin/diag", "GET"),
            ("/admin/subscriptions", "GET"),
            ("/auth/callback", "GET"),
            ("/auth/signout", "POST"),
            ("/api/ping", "GET"),
        ):
            self.assertIn(expected, routes)
