# marketplace/user_service.py
import re
import logging
import secrets
from datetime import timedelta
from typing import Callable
from uuid import uuid4

from google.oauth2 import id_token as google_id_token
from google.auth.transport import requests as google_requests
from sqlalchemy.orm import Session

from marketplace import settings
from marketplace.auth import TokenSigner, check_secret, hash_secret
from marketplace.base_utils import BaseUtils
from marketplace.entities import User, VerificationToken, utcnow
from marketplace.errors import BadRequest, NotFound, Unauthorized
from marketplace.mailer import Mailer, verification_email
from marketplace.serializers import user_to_dict

logger = logging.getLogger("adspace_backend")

PASSWORD_RE = re.compile(r"^(?=.*\d)(?=.*[!@#$%^&*])(?=.*[a-z]).{8,}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def generate_otp() -> str:
    return f"{secrets.randbelow(1000000):06d}"


class UserService(BaseUtils):
    def __init__(
        self,
        session_factory: Callable[[], Session],
        tokens: TokenSigner,
        mailer: Mailer,
        frontend_url: str = settings.FRONTEND_URL,
        google_client_id: str = settings.GOOGLE_CLIENT_ID,
        google_verifier: Callable[[str], dict] | None = None,
    ):
        self.SessionFactory = session_factory
        self.tokens = tokens
        self.mailer = mailer
        self.frontend_url = frontend_url
        self.google_client_id = google_client_id
        self.google_verifier = google_verifier or self._verify_google_credential

    def get_user(self, user_id: str) -> User | None:
        session = self.SessionFactory()
        try:
            return session.get(User, str(user_id))
        finally:
            session.close()

    # -----------------------
    # Registration / verification
    # -----------------------

    def register(self, name: str, email: str, password: str, role: str = "") -> dict:
        name = self._coerce_field_to_str(name)
        email = self._coerce_field_to_str(email).lower()
        role = self._coerce_field_to_str(role)

        if not name:
            raise BadRequest("Name is required")
        if not EMAIL_RE.match(email):
            raise BadRequest("A valid email is required")
        if not PASSWORD_RE.match(password or ""):
            raise BadRequest("Password must be at least 8 characters, include one number and one special character.")
        self._require_choice(role, ("owner", "advertiser", ""), "role")

        session = self.SessionFactory()
        try:
            if session.query(User).filter(User.email == email).first() is not None:
                raise BadRequest("User already exists")

            user = User(name=name, email=email, password_hash=hash_secret(password), role=role)
            session.add(user)
            session.flush()
            token, otp = self._issue_verification(session, user)
            session.commit()
            logger.info(f"Registered user {user.id} ({role or 'no role'})")
        finally:
            session.close()

        subject, body = verification_email(self.frontend_url, token, otp)
        self.mailer.send(email, subject, body)
        return {"message": "User registered. Check your email to verify.", "email": email}

    def _issue_verification(self, session: Session, user: User) -> tuple[str, str]:
        session.query(VerificationToken).filter(VerificationToken.user_id == user.id).delete()
        token = uuid4().hex
        otp = generate_otp()
        session.add(
            VerificationToken(
                user_id=user.id,
                token=token,
                otp_hash=hash_secret(otp),
                expires_at=utcnow() + timedelta(minutes=settings.OTP_TTL_MINUTES),
            )
        )
        return token, otp

    def verify_email(self, token: str) -> dict:
        session = self.SessionFactory()
        try:
            row = session.query(VerificationToken).filter(VerificationToken.token == token).first()
            if row is None:
                raise BadRequest("Invalid or expired token")
            user = session.get(User, row.user_id)
            if user is None:
                raise BadRequest("User not found")
            user.verified = True
            session.delete(row)
            session.commit()
            return {"message": "Email verified successfully"}
        finally:
            session.close()

    def verify_otp(self, email: str, otp: str) -> tuple[dict, str]:
        """Returns (body, access token); a verified user is signed in right away."""
        email = self._coerce_field_to_str(email).lower()
        otp = self._coerce_field_to_str(otp)

        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.email == email).first()
            if user is None:
                raise BadRequest("User not found")

            row = (
                session.query(VerificationToken)
                .filter(VerificationToken.user_id == user.id)
                .order_by(VerificationToken.created_at.desc())
                .first()
            )
            if row is None or row.expires_at < utcnow():
                raise BadRequest("Invalid or expired OTP")
            if not check_secret(row.otp_hash, otp):
                raise BadRequest("Invalid OTP")

            user.verified = True
            session.query(VerificationToken).filter(VerificationToken.user_id == user.id).delete()
            session.commit()
            token = self.tokens.sign(user.id, user.role)
            return {"message": "Email verified successfully", "user": user_to_dict(user)}, token
        finally:
            session.close()

    def resend_otp(self, email: str) -> dict:
        email = self._coerce_field_to_str(email).lower()
        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.email == email).first()
            if user is None:
                raise BadRequest("User not found")
            if user.verified:
                raise BadRequest("Email already verified")
            token, otp = self._issue_verification(session, user)
            session.commit()
        finally:
            session.close()

        subject, body = verification_email(self.frontend_url, token, otp)
        self.mailer.send(email, subject, body)
        return {"message": "New OTP sent to your email"}

    # -----------------------
    # Sessions
    # -----------------------

    def login(self, email: str, password: str) -> tuple[dict, str]:
        email = self._coerce_field_to_str(email).lower()
        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.email == email).first()
        finally:
            session.close()

        if user is None:
            raise BadRequest("Invalid credentials")
        if not user.verified:
            raise BadRequest("Please verify your email")
        if not check_secret(user.password_hash, password):
            raise BadRequest("Invalid credentials")

        token = self.tokens.sign(user.id, user.role)
        return {
            "token": token,
            "user": {"id": user.id, "name": user.name, "role": user.role},
        }, token

    def me(self, user: User) -> dict:
        return user_to_dict(user)

    def complete_onboarding(self, user_id: str, phone: str = "", location: str | None = None,
                            business_name: str | None = None, role: str | None = None) -> tuple[dict, str]:
        session = self.SessionFactory()
        try:
            user = session.get(User, str(user_id))
            if user is None:
                raise NotFound("User not found")

            if role:
                self._require_choice(role, ("owner", "advertiser"), "role")
                user.role = role
            elif not user.role:
                raise BadRequest("Please select a role")

            user.profile = {
                "phone": self._coerce_field_to_str(phone),
                "location": location,
                "businessName": business_name,
            }
            user.profile_completed = True
            session.commit()
            token = self.tokens.sign(user.id, user.role)
            return {"message": "Profile completed", "user": user_to_dict(user)}, token
        finally:
            session.close()

    # -----------------------
    # Google sign-in
    # -----------------------

    def _verify_google_credential(self, credential: str) -> dict:
        if not self.google_client_id:
            raise BadRequest("Google sign-in is not configured")
        try:
            return google_id_token.verify_oauth2_token(
                credential, google_requests.Request(), self.google_client_id
            )
        except ValueError as e:
            logger.info("Google credential rejected: %s", e)
            raise Unauthorized("Invalid Google credential")

    def google_sign_in(self, credential: str) -> tuple[dict, str]:
        claims = self.google_verifier(credential)
        email = (claims.get("email") or "").lower()
        if not email:
            raise Unauthorized("Invalid Google credential")

        session = self.SessionFactory()
        try:
            user = session.query(User).filter(User.email == email).first()
            if user is None:
                user = User(
                    name=claims.get("name") or email.split("@")[0],
                    email=email,
                    password_hash=None,
                    verified=True,
                    role="",
                    profile={"phone": ""},
                )
                session.add(user)
                logger.info(f"Created Google account for {email}")
            elif not user.verified:
                user.verified = True
            session.commit()
            token = self.tokens.sign(user.id, user.role)
            return {
                "token": token,
                "user": {"id": user.id, "name": user.name, "role": user.role},
                "redirect": "/onboarding" if not user.profile_completed else "/dashboard",
            }, token
        finally:
            session.close()
