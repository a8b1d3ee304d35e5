"""
Application configuration for fritzlog.

Provides environment-aware settings with conservative defaults. Environment
variables use the FRITZBOX_ prefix (e.g. FRITZBOX_DOMAIN, FRITZBOX_PASSWORD);
the database location is also accepted from DATABASE_URL.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import AliasChoices, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SessionConfig(BaseModel):
	"""
	Device session handling.

	Notes:
	- idle_timeout_seconds: the device drops a session after 20 minutes
	  without requests. A session older than this is renewed without asking
	  the device first.
	"""

	idle_timeout_seconds: int = Field(20 * 60, ge=1)
	login_path: str = Field("/login_sid.lua?version=2")
	data_path: str = Field("/data.lua")


class Config(BaseSettings):
	"""
	Global configuration with environment overrides.
	"""

	model_config = SettingsConfigDict(
		env_prefix="FRITZBOX_",
		env_file=".env",
		extra="ignore",
		populate_by_name=True,
	)

	domain: str = Field("fritz.box", description="Host name or IP of the device")
	username: Optional[str] = Field(None, description="User to log in with")
	password: Optional[str] = Field(None, description="Password to log in with")
	root_cert_path: Optional[Path] = Field(
		None, description="PEM file used to verify the device certificate"
	)

	refresh_pause_seconds: int = Field(60, ge=1, description="Pause between polls")
	request_timeout_seconds: float = Field(30.0, gt=0.0)
	timezone: str = Field(
		"Europe/Berlin", description="Civil time zone the device reports in"
	)

	save_response: bool = Field(False, description="Archive raw response bodies")
	save_response_path: Optional[Path] = Field(None)

	database_path: Path = Field(
		Path("fritz_logs.db3"),
		validation_alias=AliasChoices(
			"database_path", "FRITZBOX_DATABASE_PATH", "DATABASE_URL"
		),
	)
	skip_invalid_entries: bool = Field(
		True, description="Skip entries that fail normalization instead of aborting the poll"
	)

	log_level: str = Field("INFO", description="Default logging level")
	logs_dir: Path = Field(Path("logs"), description="Directory for log files")
	session: SessionConfig = SessionConfig()

	@field_validator("timezone")
	@classmethod
	def _known_timezone(cls, value: str) -> str:
		try:
			ZoneInfo(value)
		except (ZoneInfoNotFoundError, ValueError) as exc:
			raise ValueError(f"unknown time zone: {value}") from exc
		return value

	@field_validator("database_path", mode="before")
	@classmethod
	def _strip_sqlite_scheme(cls, value: object) -> object:
		# DATABASE_URL may be given as sqlite://path
		if isinstance(value, str) and value.startswith("sqlite://"):
			return value[len("sqlite://"):]
		return value

	@property
	def tzinfo(self) -> ZoneInfo:
		return ZoneInfo(self.timezone)

	def model_post_init(self, __context: object) -> None:
		self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
