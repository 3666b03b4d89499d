# Overview: Pytest coverage for accounts, session tokens and operator CLI commands.

from datetime import timedelta

import pytest

from bookmarket.extensions import db
from bookmarket.models import Purchase, SessionToken, User
from bookmarket.services import session_service
from bookmarket.services.auth_service import (
    PasswordValidationError,
    authenticate,
    create_user,
    validate_password_strength,
)
from bookmarket.services.purchase_service import create_purchase
from bookmarket.validation import ValidationError


class TestAccounts:
    @pytest.mark.parametrize("password", ["Short1!", "password123!", "PASSWORD123!", "Password!!!", "Password123"])
    def test_weak_passwords(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_create_and_authenticate(self, app):
        user = create_user("Reader@Bookmarket.test", "reader", "Password123!", stripe_account_id="acct_r")

        assert user.email == "reader@bookmarket.test"
        assert user.can_sell is True
        assert user.password_hash != "Password123!"
        assert authenticate("reader@bookmarket.test", "Password123!").id == user.id
        assert authenticate("reader@bookmarket.test", "wrong") is None

    def test_duplicate_username_or_email(self, app):
        create_user("reader@bookmarket.test", "reader", "Password123!")
        with pytest.raises(ValidationError) as exc_info:
            create_user("other@bookmarket.test", "reader", "Password123!")
        assert exc_info.value.code == "user_exists"

    def test_inactive_user_cannot_authenticate(self, db_session):
        user = create_user("reader@bookmarket.test", "reader", "Password123!")
        user.is_active = False
        db_session.commit()
        assert authenticate("reader@bookmarket.test", "Password123!") is None


class TestSessions:
    def test_valid_token_returns_user(self, buyer):
        _, token = session_service.create_session(buyer.id)
        assert session_service.validate_session(token).id == buyer.id

    def test_token_is_stored_hashed(self, buyer):
        session, token = session_service.create_session(buyer.id)
        assert session.token_hash != token
        assert session.token_hash == session_service.hash_token(token)

    def test_idle_session_is_revoked(self, db_session, buyer):
        session, token = session_service.create_session(buyer.id)
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        db_session.expire_all()
        assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_expired_session(self, db_session, buyer):
        session, token = session_service.create_session(buyer.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, db_session, buyer):
        _, token = session_service.create_session(buyer.id)
        buyer.is_active = False
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_revoke(self, buyer):
        _, token = session_service.create_session(buyer.id)
        assert session_service.revoke_session(token) is True
        assert session_service.revoke_session(token) is False
        assert session_service.validate_session(token) is None


class TestCli:
    def test_users_create(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--email", "cli@bookmarket.test",
            "--username", "cli_user",
            "--password", "Password123!",
            "--stripe-account-id", "acct_cli",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Created user" in result.output
        assert db.session.query(User).filter_by(username="cli_user").one().can_sell is True

    def test_users_create_weak_password(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--email", "cli@bookmarket.test", "--username", "cli_user", "--password", "weak",
        ])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_purchases_cancel_and_list(self, app, book, buyer):
        purchase = create_purchase(book.id, buyer.id)
        runner = app.test_cli_runner()

        result = runner.invoke(args=["purchases", "cancel", str(purchase.id)])
        assert result.exit_code == 0, result.output
        assert "cancelled" in result.output

        db.session.expire_all()
        assert db.session.get(Purchase, purchase.id).status == "cancelled"

        listing = runner.invoke(args=["purchases", "list", "--status", "cancelled"])
        assert f"{purchase.id:<6}" in listing.output

    def test_deliveries_empty(self, app):
        result = app.test_cli_runner().invoke(args=["purchases", "deliveries"])
        assert "No webhook deliveries found." in result.output
