"""
Credential Store module for the messaging session.

The platform hands out an opaque credential blob that lets the session
resume without a new authentication challenge. This module persists that
blob as HMAC-protected JSON so a modified file is detected instead of being
silently fed back to the platform.
"""

import hashlib
import hmac
import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .exceptions import PersistenceError, TamperingError


class CredentialStore:
    """
    Persistent storage for the session credential blob.

    The blob is stored verbatim under ``credentials``; its contents are
    never interpreted here.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the credential store.

        Args:
            file_path: Path to the credential file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._saves = 0

    def load(self) -> Optional[dict]:
        """
        Load the credential blob and validate its HMAC.

        Returns:
            The stored blob, or None if no credentials were saved yet

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        if not self._file_path.exists():
            return None

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse credential file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read credential file: {e}",
                details={"file_path": str(self._file_path)},
            )

        if not isinstance(raw_data, dict):
            raise PersistenceError(
                code="parse_error",
                message="Credential file does not contain a JSON object",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        computed_hmac = self.compute_hmac({
            "version": raw_data.get("version"),
            "credentials": raw_data.get("credentials"),
            "updated_at": raw_data.get("updated_at"),
        })

        if not self.validate_hmac(stored_hmac, computed_hmac):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - credential file may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        credentials = raw_data.get("credentials")
        return credentials if isinstance(credentials, dict) else None

    def save(self, credentials: dict) -> None:
        """
        Persist a credential blob, replacing the previous one.

        The file is written next to its final location and renamed into
        place so a crash never leaves a half-written blob behind.

        Args:
            credentials: The opaque blob received from the platform

        Raises:
            PersistenceError: If the file cannot be written
        """
        now = datetime.now(timezone.utc).isoformat()
        payload = {
            "version": self.VERSION,
            "credentials": credentials,
            "updated_at": now,
        }
        payload["hmac"] = self.compute_hmac(payload)

        tmp_path = self._file_path.with_suffix(self._file_path.suffix + ".tmp")
        try:
            self._file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._file_path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write credential file: {e}",
                details={"file_path": str(self._file_path)},
            )

        self._saves += 1

    def clear(self) -> bool:
        """
        Delete stored credentials (after a logout they are worthless).

        Returns:
            True if a file was removed
        """
        try:
            self._file_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to delete credential file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def compute_hmac(self, data: dict) -> str:
        """
        Compute HMAC-SHA256 over serialized data.

        Args:
            data: Dictionary to compute HMAC over

        Returns:
            Hexadecimal HMAC string
        """
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    def validate_hmac(self, stored_hmac: str, computed_hmac: str) -> bool:
        """Validate HMAC using constant-time comparison."""
        return hmac.compare_digest(str(stored_hmac), computed_hmac)

    @property
    def save_count(self) -> int:
        """Number of successful saves since construction."""
        return self._saves

    @property
    def file_path(self) -> Path:
        """Get the credential file path."""
        return self._file_path
