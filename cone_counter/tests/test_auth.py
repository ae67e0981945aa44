import unittest
from unittest.mock import patch

from firebase_admin import auth
from firebase_admin import exceptions as firebase_exceptions

from cone_counter.auth import (
    FirebaseTokenVerifier,
    Principal,
    StaticTokenVerifier,
    extract_bearer_token,
)
from cone_counter.errors import Unauthenticated, UpstreamFailure


class FirebaseTokenVerifierTests(unittest.TestCase):
    def setUp(self):
        self.verifier = FirebaseTokenVerifier(app=None, check_revoked=True)

    @patch("cone_counter.auth.auth.verify_id_token")
    def test_valid_token(self, verify):
        verify.return_value = {"uid": "alice", "email": "a@example.com", "name": "Alice"}
        principal = self.verifier.verify("tok")
        self.assertEqual(principal, Principal("alice", "a@example.com", "Alice"))
        verify.assert_called_once_with("tok", app=None, check_revoked=True)

    @patch("cone_counter.auth.auth.verify_id_token")
    def test_missing_claims_default_to_empty(self, verify):
        verify.return_value = {"uid": "alice"}
        self.assertEqual(self.verifier.verify("tok"), Principal("alice"))

    @patch("cone_counter.auth.auth.verify_id_token")
    def test_rejected_tokens_map_to_reasons(self, verify):
        cases = [
            (auth.ExpiredIdTokenError("expired", None), "expired_token"),
            (auth.RevokedIdTokenError("revoked"), "revoked_token"),
            (auth.UserDisabledError("disabled"), "disabled_user"),
            (auth.InvalidIdTokenError("bad"), "invalid_token"),
            (auth.UserNotFoundError("no such user"), "invalid_token"),
            (ValueError("not a jwt"), "invalid_token"),
        ]
        for error, reason in cases:
            with self.subTest(reason=reason, error=type(error).__name__):
                verify.side_effect = error
                with self.assertRaises(Unauthenticated) as ctx:
                    self.verifier.verify("tok")
                self.assertEqual(ctx.exception.code, reason)
                self.assertEqual(ctx.exception.http_status, 401)

    @patch("cone_counter.auth.auth.verify_id_token")
    def test_certificate_fetch_failure_is_upstream(self, verify):
        verify.side_effect = auth.CertificateFetchError("no keys", None)
        with self.assertLogs("cone_counter.auth", level="ERROR"):
            with self.assertRaises(UpstreamFailure):
                self.verifier.verify("tok")

    @patch("cone_counter.auth.auth.verify_id_token")
    def test_user_lookup_failure_is_upstream(self, verify):
        verify.side_effect = firebase_exceptions.UnavailableError("backend down")
        with self.assertLogs("cone_counter.auth", level="ERROR"):
            with self.assertRaises(UpstreamFailure) as ctx:
                self.verifier.verify("tok")
        self.assertEqual(ctx.exception.http_status, 502)


class StaticTokenVerifierTests(unittest.TestCase):
    def test_known_and_unknown_tokens(self):
        verifier = StaticTokenVerifier({"token-alice": "alice"})
        self.assertEqual(verifier.verify("token-alice").uid, "alice")
        with self.assertRaises(Unauthenticated):
            verifier.verify("token-bob")


class ExtractBearerTokenTests(unittest.TestCase):
    def test_extracts_token(self):
        self.assertEqual(extract_bearer_token("Bearer abc.def"), "abc.def")

    def test_missing_or_malformed_header(self):
        for header in [None, "", "Basic abc", "Bearer ", "bearer abc"]:
            with self.subTest(header=header):
                with self.assertRaises(Unauthenticated) as ctx:
                    extract_bearer_token(header)
                self.assertEqual(ctx.exception.code, "missing_token")


if __name__ == "__main__":
    unittest.main()
