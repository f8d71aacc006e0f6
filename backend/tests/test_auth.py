# Overview: Tests for registration, login, sessions and companies.

from datetime import timedelta

import pytest

from albaranes.models import SessionToken
from albaranes.services import auth_service, session_service
from albaranes.services.auth_service import PasswordValidationError
from albaranes.validation import AuthorizationError, ConflictError, ValidationError


class TestAuthService:

    def test_password_is_hashed(self, db_session, user):
        assert user.password_hash != "Password123"
        assert auth_service.verify_password("Password123", user.password_hash)

    def test_authenticate(self, db_session, user):
        assert auth_service.authenticate("ANA@example.com", "Password123") is user
        assert auth_service.authenticate("ana@example.com", "wrong-pass1") is None

    def test_inactive_user_cannot_authenticate(self, db_session, user):
        user.is_active = False
        db_session.commit()
        assert auth_service.authenticate("ana@example.com", "Password123") is None

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678"])
    def test_weak_password(self, db_session, password):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("Weak", "weak@example.com", password)

    def test_duplicate_email(self, db_session, user):
        with pytest.raises(ConflictError):
            auth_service.create_user("Again", "Ana@Example.com", "Password123")

    def test_invalid_email(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user("Nobody", "not-an-email", "Password123")

    def test_create_company_makes_admin(self, db_session, user, company):
        assert user.company_id == company.id
        assert user.role == "admin"
        assert company.admin_user_id == user.id

    def test_second_company_is_conflict(self, db_session, user, company):
        with pytest.raises(ConflictError):
            auth_service.create_company(user, name="Other", cif="B99999999")


class TestSessions:

    def test_token_hash_stored(self, db_session, user):
        record, token = session_service.create_session(user.id)
        assert record.token_hash == session_service.hash_token(token)
        assert record.token_hash != token
        assert session_service.validate_session(token) is user

    def test_revoked_session_rejected(self, db_session, user):
        _, token = session_service.create_session(user.id)
        assert session_service.revoke_session(token)
        assert session_service.validate_session(token) is None

    def test_idle_session_expires(self, db_session, user):
        record, token = session_service.create_session(user.id)
        record.last_used_at = record.last_used_at - timedelta(days=1)
        db_session.commit()
        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, record.id).is_revoked

    def test_unknown_user(self, db_session):
        with pytest.raises(ValueError):
            session_service.create_session(4242)


class TestAuthRoutes:

    def test_register_login_me_logout(self, client, db_session):
        response = client.post("/api/auth/register", json={
            "name": "Rita", "email": "rita@example.com", "password": "Password123",
        })
        assert response.status_code == 201
        assert response.get_json()["user"]["email"] == "rita@example.com"

        response = client.post("/api/auth/login", json={"email": "rita@example.com", "password": "Password123"})
        assert response.status_code == 200
        headers = {"Authorization": f"Bearer {response.get_json()['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.get_json()["user"]["name"] == "Rita"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_register_conflict(self, client, user):
        response = client.post("/api/auth/register", json={
            "name": "Ana", "email": "ana@example.com", "password": "Password123",
        })
        assert response.status_code == 409

    def test_login_errors(self, client, user):
        assert client.post("/api/auth/login", json={}).status_code == 400
        response = client.post("/api/auth/login", json={"email": "ana@example.com", "password": "nope"})
        assert response.status_code == 401

    def test_company_routes(self, client, auth_headers):
        assert client.get("/api/companies/mine", headers=auth_headers).status_code == 404

        response = client.post("/api/companies", json={"name": "Obras SL", "cif": "B12345678"},
                               headers=auth_headers)
        assert response.status_code == 201

        mine = client.get("/api/companies/mine", headers=auth_headers)
        assert mine.get_json()["company"]["cif"] == "B12345678"

    def test_login_rejects_non_object_body(self, client, user):
        response = client.post("/api/auth/login", json=["ana@example.com", "Password123"])
        assert response.status_code == 400
        assert response.get_json()["error"] == "Request body must be a JSON object"

    def test_update_profile(self, client, user, other_user, auth_headers):
        response = client.patch("/api/auth/profile", json={"name": "Ana Maria", "email": "AnaM@Example.com"},
                                headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["user"]["email"] == "anam@example.com"
        assert auth_service.authenticate("anam@example.com", "Password123") is user

        taken = client.patch("/api/auth/profile", json={"email": "olga@example.com"}, headers=auth_headers)
        assert taken.status_code == 409
        assert client.patch("/api/auth/profile", json={"email": "nope"}, headers=auth_headers).status_code == 400
        assert client.patch("/api/auth/profile", json={"name": " "}, headers=auth_headers).status_code == 400

    def test_update_company(self, client, user, other_user, company, auth_headers, auth_headers_for):
        response = client.patch("/api/companies/mine", json={"name": "Obras Ana SA", "phone": "600000000"},
                                headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()["company"]["name"] == "Obras Ana SA"
        assert company.phone == "600000000"

        other = auth_headers_for(other_user)
        assert client.patch("/api/companies/mine", json={"name": "X"}, headers=other).status_code == 404

    def test_only_admin_updates_company(self, db_session, user, other_user, company):
        other_user.company_id = company.id
        db_session.commit()
        with pytest.raises(AuthorizationError):
            auth_service.update_company(other_user, name="Takeover SL")

    def test_company_cif_taken(self, db_session, user, other_user, company):
        auth_service.create_company(other_user, name="Otra SL", cif="B22222222")
        with pytest.raises(ConflictError):
            auth_service.update_company(user, cif="B22222222")
        assert company.cif == "B11111111"
