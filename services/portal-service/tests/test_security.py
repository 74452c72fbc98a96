"""
Security Helper Tests
"""

from shared.utils.security import (
    generate_session_token, generate_flow_id, generate_pkce_pair, pkce_challenge, token_preview
)


class TestSecurity:
    def test_generate_session_token(self):
        token = generate_session_token()
        assert len(token) > 20
        assert token != generate_session_token()

    def test_generate_flow_id(self):
        assert generate_flow_id() != generate_flow_id()

    def test_pkce_challenge_rfc7636_vector(self):
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert pkce_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_pkce_pair(self):
        verifier, challenge = generate_pkce_pair()
        assert 43 <= len(verifier) <= 128
        assert challenge == pkce_challenge(verifier)
        assert "=" not in challenge

    def test_token_preview(self):
        assert token_preview("abcdefghijklmnop") == "abcdefghij..."
        assert token_preview(None) == "<none>"
