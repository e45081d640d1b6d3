"""Tests for the request-scoped admin context and settings."""

import pytest
import structlog

from clinic_queue.config.config import Settings
from clinic_queue.config.logging_config import bind_admin_context, log_request_context
from clinic_queue.services.admin_auth import ANONYMOUS_ADMIN, authenticate_admin
from clinic_queue.services.errors import AdminAuthenticationError


class TestAuthenticateAdmin:
    def test_valid_token(self):
        settings = Settings(_env_file=None, admin_token="s3cret")

        context = authenticate_admin("s3cret", settings)

        assert context.authenticated is True
        assert context.admin_id != ANONYMOUS_ADMIN
        assert "s3cret" not in context.admin_id

    @pytest.mark.parametrize("token", [None, "", "wrong"])
    def test_invalid_token(self, token):
        settings = Settings(_env_file=None, admin_token="s3cret")

        with pytest.raises(AdminAuthenticationError) as exc_info:
            authenticate_admin(token, settings)

        assert exc_info.value.status_code == 401

    def test_disabled_when_no_token_configured(self):
        context = authenticate_admin(None, Settings(_env_file=None))

        assert context.authenticated is False
        assert context.admin_id == ANONYMOUS_ADMIN


class TestSettings:
    def test_secrets_are_redacted(self):
        settings = Settings(_env_file=None, admin_token="s3cret", arango_password="pw")

        safe = settings.get_safe_config_dict()

        assert safe["admin_token"] == "***REDACTED***"
        assert safe["arango_password"] == "***REDACTED***"

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.store_backend == "memory"
        assert settings.queue_scope == "today"
        assert settings.admin_auth_enabled is False
        assert settings.is_production is False


class TestLogContext:
    def test_admin_bound_after_request_context(self):
        log_request_context(request_id="req-1", method="POST", path="/api/v1/patients")
        bind_admin_context("ab12cd34ef56", authenticated=True)

        context = structlog.contextvars.get_contextvars()

        assert context["request_id"] == "req-1"
        assert context["admin_id"] == "ab12cd34ef56"
        assert context["admin_authenticated"] is True
        structlog.contextvars.clear_contextvars()

    def test_new_request_drops_previous_admin(self):
        bind_admin_context("ab12cd34ef56", authenticated=True)
        log_request_context(request_id="req-2", method="GET", path="/api/v1/queue")

        context = structlog.contextvars.get_contextvars()

        assert "admin_id" not in context
        assert context["http_path"] == "/api/v1/queue"
        structlog.contextvars.clear_contextvars()
