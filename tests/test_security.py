import base64
import hashlib
import hmac
import unittest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from syncbridge.security import (
    BasicAuthMiddleware,
    _parse_basic_auth_header,
    compute_signature,
    verify_signature,
)


class BasicAuthParsingTests(unittest.TestCase):
    def test_parse_basic_auth_header_valid(self):
        token = base64.b64encode(b"user:pass").decode("ascii")
        creds = _parse_basic_auth_header(f"Basic {token}")
        self.assertIsNotNone(creds)
        assert creds is not None
        self.assertEqual(creds.username, "user")
        self.assertEqual(creds.password, "pass")

    def test_parse_basic_auth_header_invalid_scheme(self):
        token = base64.b64encode(b"user:pass").decode("ascii")
        self.assertIsNone(_parse_basic_auth_header(f"Bearer {token}"))

    def test_parse_basic_auth_header_invalid_base64(self):
        self.assertIsNone(_parse_basic_auth_header("Basic !!!notbase64!!!"))

    def test_parse_basic_auth_header_missing_colon(self):
        token = base64.b64encode(b"userpass").decode("ascii")
        self.assertIsNone(_parse_basic_auth_header(f"Basic {token}"))


class BasicAuthMiddlewareTests(unittest.TestCase):
    def setUp(self):
        app = FastAPI()
        app.add_middleware(
            BasicAuthMiddleware,
            username="admin",
            password="pw",
            allow_paths={"/health"},
            allow_prefixes=("/webhooks/",),
        )

        @app.get("/health")
        def health():
            return {"status": "healthy"}

        @app.post("/webhooks/jira")
        def webhook():
            return {"message": "ok"}

        @app.get("/api/sync/logs")
        def logs():
            return []

        self.client = TestClient(app)

    def test_open_paths_skip_auth(self):
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.post("/webhooks/jira").status_code, 200)

    def test_protected_path_requires_credentials(self):
        response = self.client.get("/api/sync/logs")
        self.assertEqual(response.status_code, 401)
        self.assertIn("SyncBridge", response.headers["WWW-Authenticate"])

        self.assertEqual(self.client.get("/api/sync/logs", auth=("admin", "nope")).status_code, 401)
        self.assertEqual(self.client.get("/api/sync/logs", auth=("admin", "pw")).status_code, 200)


class WebhookSignatureTests(unittest.TestCase):
    body = b'{"issue": {"id": 1}}'

    def test_compute_signature_is_hex_hmac_sha256(self):
        expected = hmac.new(b"s3cret", self.body, hashlib.sha256).hexdigest()
        self.assertEqual(compute_signature(self.body, "s3cret"), expected)
        self.assertEqual(compute_signature(self.body, "s3cret", prefix="sha256="), f"sha256={expected}")

    def test_verify_accepts_correct_signature(self):
        signature = compute_signature(self.body, "s3cret", prefix="sha256=")
        self.assertTrue(verify_signature(self.body, signature, "s3cret", prefix="sha256="))

    def test_verify_rejects_modified_body(self):
        signature = compute_signature(self.body, "s3cret")
        tampered = self.body.replace(b"1", b"2")
        self.assertFalse(verify_signature(tampered, signature, "s3cret"))

    def test_verify_rejects_flipped_signature_character(self):
        signature = compute_signature(self.body, "s3cret")
        flipped = ("0" if signature[0] != "0" else "1") + signature[1:]
        self.assertFalse(verify_signature(self.body, flipped, "s3cret"))

    def test_verify_rejects_missing_signature_and_wrong_prefix(self):
        signature = compute_signature(self.body, "s3cret")
        self.assertFalse(verify_signature(self.body, None, "s3cret"))
        self.assertFalse(verify_signature(self.body, "", "s3cret"))
        # Jira signatures must carry the "sha256=" prefix.
        self.assertFalse(verify_signature(self.body, signature, "s3cret", prefix="sha256="))


if __name__ == "__main__":
    unittest.main()
