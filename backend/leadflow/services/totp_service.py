"""TOTP and backup-code primitives for two-factor authentication."""

import io
import re
import secrets
from base64 import b64encode
from typing import List, Optional

import pyotp
import qrcode
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from leadflow.config import settings

# Uppercase letters without I and O, digits without 0 and 1
BACKUP_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

_TOTP_CODE_RE = re.compile(r"^\d{6}$")
_NON_ALNUM_RE = re.compile(r"[^A-Z0-9]")

_hasher = PasswordHasher()


class TOTPService:
    """Stateless helpers around pyotp, qrcode and argon2."""

    @staticmethod
    def generate_secret() -> str:
        """Generate a new TOTP secret (32 Base32 chars, 160 bits)."""
        return pyotp.random_base32(length=32)

    @staticmethod
    def get_totp_uri(secret: str, account_name: str, issuer: Optional[str] = None) -> str:
        """
        Generate the otpauth:// provisioning URI for authenticator apps.

        Args:
            secret: TOTP secret
            account_name: User email (or user id when no email is known)
            issuer: Application name, defaults to TOTP_ISSUER

        Returns:
            Provisioning URI string
        """
        return pyotp.TOTP(secret).provisioning_uri(
            name=account_name,
            issuer_name=issuer or settings.TOTP_ISSUER,
        )

    @staticmethod
    def generate_qr_code(uri: str) -> str:
        """
        Render a provisioning URI as a base64 PNG.

        Args:
            uri: TOTP provisioning URI

        Returns:
            Base64-encoded QR code image (PNG)
        """
        qr = qrcode.QRCode(version=1, box_size=10, border=5)
        qr.add_data(uri)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        buffer.seek(0)

        return b64encode(buffer.getvalue()).decode()

    @staticmethod
    def verify_totp(secret: Optional[str], code: Optional[str]) -> bool:
        """
        Verify a 6-digit TOTP code (RFC 6238, SHA1, 30 second step).

        Drift tolerance is TOTP_VALID_WINDOW steps either side. pyotp
        compares candidates in constant time.

        Args:
            secret: TOTP secret
            code: Code entered by the user (surrounding whitespace ignored)

        Returns:
            True if code is valid
        """
        if not secret or not code:
            return False
        code = code.strip().replace(" ", "")
        if not _TOTP_CODE_RE.match(code):
            return False
        return pyotp.TOTP(secret).verify(code, valid_window=settings.TOTP_VALID_WINDOW)

    @staticmethod
    def generate_backup_codes(
        count: Optional[int] = None, length: Optional[int] = None
    ) -> List[str]:
        """
        Generate single-use recovery codes.

        Each character is drawn independently and uniformly from
        BACKUP_CODE_ALPHABET using the OS CSPRNG.

        Args:
            count: Number of codes, defaults to BACKUP_CODE_COUNT (8)
            length: Characters per code, defaults to BACKUP_CODE_LENGTH (8)

        Returns:
            List of plaintext backup codes
        """
        count = count or settings.BACKUP_CODE_COUNT
        length = length or settings.BACKUP_CODE_LENGTH
        return [
            "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
            for _ in range(count)
        ]

    @staticmethod
    def normalize_backup_code(code: str) -> str:
        """Uppercase and drop separators, so ``abcd-efgh`` matches ``ABCDEFGH``."""
        return _NON_ALNUM_RE.sub("", (code or "").upper())

    @staticmethod
    def hash_backup_code(code: str) -> str:
        """
        Hash a backup code for storage.

        Args:
            code: Backup code (separators and case are ignored)

        Returns:
            argon2 hash
        """
        return _hasher.hash(TOTPService.normalize_backup_code(code))

    @staticmethod
    def verify_backup_code(code: str, hashed_code: str) -> bool:
        """
        Verify a backup code against a stored hash.

        Args:
            code: User-provided backup code
            hashed_code: Stored argon2 hash

        Returns:
            True if code matches
        """
        clean_code = TOTPService.normalize_backup_code(code)
        if not clean_code or not hashed_code:
            return False
        try:
            return _hasher.verify(hashed_code, clean_code)
        except (VerificationError, InvalidHashError):
            return False

    @staticmethod
    def find_backup_code(code: str, hashed_codes: Optional[List[str]]) -> Optional[int]:
        """
        Return the index of the stored hash matching ``code``, or None.

        Args:
            code: User-provided backup code
            hashed_codes: Stored argon2 hashes

        Returns:
            Index into ``hashed_codes`` or None when nothing matches
        """
        if not hashed_codes or not TOTPService.normalize_backup_code(code):
            return None
        for index, hashed_code in enumerate(hashed_codes):
            if TOTPService.verify_backup_code(code, hashed_code):
                return index
        return None


totp_service = TOTPService()
