"""
HTTP client for the device's web interface.

Handles login (challenge-response), session validation/renewal, and fetching
the log page. Every request is logged, optionally recorded in the store, and
optionally archived to disk.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Union

import requests

from fritzlog.core.config import Config, config as default_config
from fritzlog.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DeviceError,
    StoreError,
)
from fritzlog.data.ingestion import response_filename
from fritzlog.data.parsers import ParsingError, parse_log_response
from fritzlog.data.schema import DeviceRequest, RawLogEntry
from fritzlog.store.base import LogStore

from .session import DeviceSession, SessionInfo

logger = logging.getLogger(__name__)


class FritzClient:
    """
    Talks to one device over HTTPS.

    The client holds no session state: sessions are DeviceSession objects
    owned by the caller and passed into each call.
    """

    def __init__(
        self,
        settings: Optional[Config] = None,
        store: Optional[LogStore] = None,
        http: Optional[requests.Session] = None,
    ):
        self.settings = settings if settings is not None else default_config
        self.store = store
        self.http = http if http is not None else requests.Session()
        self.http.verify = self._resolve_verify()
        self.save_response_path = self._resolve_save_response_path()

    def _resolve_verify(self) -> Union[bool, str]:
        cert = self.settings.root_cert_path
        if cert is not None and Path(cert).is_file():
            return str(cert)
        logger.warning("Couldn't load root cert, accepting invalid certs")
        return False

    def _resolve_save_response_path(self) -> Optional[Path]:
        if not self.settings.save_response:
            return None
        path = self.settings.save_response_path
        if path is None:
            logger.warning("save_response is enabled but save_response_path is not set")
            return None
        if path.exists() and not path.is_dir():
            logger.warning(f"save_response_path {path} is not a directory")
            return None
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Couldn't create save_response_path {path}: {e}")
            return None
        return path

    def make_url(self, path: str) -> str:
        """``make_url("/data.lua")`` → ``https://<domain>/data.lua``"""
        return f"https://{self.settings.domain}{path}"

    def _credentials(self) -> tuple:
        username, password = self.settings.username, self.settings.password
        if not username or not password:
            raise ConfigurationError("FRITZBOX_USERNAME and FRITZBOX_PASSWORD must be set")
        return username, password

    def _save_response(self, name: str, text: str) -> None:
        if self.save_response_path is None:
            return
        path = self.save_response_path / response_filename(datetime.now(), name)
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Couldn't save {path}: {e}")

    def _record_request(self, meta: DeviceRequest) -> None:
        if self.store is None:
            return
        try:
            self.store.insert_request(meta)
        except StoreError as e:
            logger.warning(f"Couldn't insert request metadata: {e}")

    def _request(
        self,
        name: str,
        method: str,
        path: str,
        data: Optional[Dict[str, str]] = None,
        session: Optional[DeviceSession] = None,
    ) -> str:
        url = self.make_url(path)
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        status: Optional[int] = None

        try:
            try:
                response = self.http.request(
                    method,
                    url,
                    data=data,
                    timeout=self.settings.request_timeout_seconds,
                )
            except requests.RequestException as e:
                raise DeviceError(f"{name} request to {url} failed: {e}") from e

            status = response.status_code
            if not 200 <= status < 300:
                raise DeviceError(f"{name} request to {url} returned status {status}")
            text = response.text
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            self._record_request(
                DeviceRequest(
                    datetime=started_at,
                    name=name,
                    url=url,
                    method=method,
                    duration_ms=duration_ms,
                    response_code=status,
                    session_id=str(session) if session is not None else None,
                )
            )

        logger.info(
            "%s request to %s (%s - %s) took %dms (session-id: %s)",
            name,
            url,
            method,
            status,
            duration_ms,
            session,
        )

        if session is not None:
            session.touch()
        self._save_response(name, text)
        return text

    def login_challenge(self) -> SessionInfo:
        text = self._request("login-challenge", "GET", self.settings.session.login_path)
        return SessionInfo.from_xml(text)

    def login(self) -> DeviceSession:
        """
        Create a new session; does not look at any existing one.

        Raises:
            ConfigurationError: If credentials are missing
            AuthenticationError: If the device rejects the login
        """
        username, password = self._credentials()
        challenge = self.login_challenge()

        if not challenge.has_user(username):
            names = [user.name for user in challenge.users]
            raise AuthenticationError(f"trying to login with invalid user ({username} not in {names})")

        if challenge.block_time > 0:
            logger.warning(f"Device reports a login block time of {challenge.block_time}s")

        text = self._request(
            "login-response",
            "POST",
            self.settings.session.login_path,
            data={"username": username, "response": challenge.make_response(password)},
        )
        info = SessionInfo.from_xml(text)
        if not info.session_id.is_valid:
            raise AuthenticationError(f"invalid session id after login ({info.session_id})")

        logger.info(f"Logged in as {username}")
        return DeviceSession(
            session_id=info.session_id,
            idle_timeout=timedelta(seconds=self.settings.session.idle_timeout_seconds),
        )

    def check_session(self, session: DeviceSession) -> bool:
        """Ask the device whether ``session`` is still accepted."""
        text = self._request(
            "check-session-id",
            "POST",
            self.settings.session.login_path,
            data={"sid": str(session)},
            session=session,
        )
        info = SessionInfo.from_xml(text)
        return info.session_id.is_valid and info.session_id == session.session_id

    def ensure_session(self, session: Optional[DeviceSession]) -> DeviceSession:
        """
        Validate-then-renew.

        Returns ``session`` if the device still accepts it, otherwise a new
        session from a fresh login. Sessions past their idle timeout are
        renewed without asking the device.
        """
        if session is not None and not session.is_expired() and self.check_session(session):
            return session
        logger.info("Session missing or expired, logging in")
        return self.login()

    def logout(self, session: DeviceSession) -> None:
        self._request(
            "logout",
            "POST",
            self.settings.session.login_path,
            data={"logout": "1", "sid": str(session)},
            session=session,
        )

    def fetch_logs(self, session: DeviceSession) -> List[RawLogEntry]:
        """
        Fetch the device's log page.

        The device returns entries newest first; so does this method.

        Raises:
            DeviceError: On transport errors, bad status, or an unparsable body
        """
        text = self._request(
            "logs",
            "POST",
            self.settings.session.data_path,
            data={
                "xhr": "1",
                "page": "log",
                "lang": "de",
                "filter": "0",
                "sid": str(session),
                "xhrId": "all",
            },
            session=session,
        )
        try:
            return parse_log_response(text)
        except ParsingError as e:
            raise DeviceError(f"unexpected log response: {e}") from e
