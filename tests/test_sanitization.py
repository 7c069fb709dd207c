"""Tests for error message sanitization."""

from etlcore.utils.sanitization import sanitize_error_message


class TestSanitizeErrorMessage:
    """Test cases for sanitize_error_message function."""

    def test_plain_message_unchanged(self):
        """Should pass through messages without secrets."""
        assert sanitize_error_message("GET /contacts returned 503") == "GET /contacts returned 503"

    def test_none_and_empty(self):
        """Should return an empty string for missing messages."""
        assert sanitize_error_message(None) == ""
        assert sanitize_error_message("") == ""

    def test_url_credentials(self):
        """Should mask user:password in URLs."""
        result = sanitize_error_message("connect to postgres://etl:s3cret@db:5432/app failed")
        assert result == "connect to postgres://***@db:5432/app failed"

    def test_secret_pairs(self):
        """Should mask values of token, secret, password and API key pairs."""
        result = sanitize_error_message(
            'refresh_token=abc&client_secret: xyz {"password": "pw", "api_key": "k1"}'
        )
        for secret in ("abc", "xyz", '"pw"', '"k1"'):
            assert secret not in result
        assert "refresh_token=***" in result

    def test_authorization_values(self):
        """Should mask Bearer and Basic header values."""
        result = sanitize_error_message("401 with Authorization: Bearer eyJhbGciOi.x.y")
        assert result == "401 with Authorization: Bearer ***"

    def test_control_characters(self):
        """Should remove control characters to prevent log injection."""
        assert sanitize_error_message("bad\x1b[31m row\x00") == "bad[31m row"

    def test_length_limit(self):
        """Should truncate long messages with an ellipsis."""
        result = sanitize_error_message("x" * 50, max_length=10)
        assert result == "xxxxxxx..."
