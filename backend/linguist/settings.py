from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Logging level applied once at application start (DEBUG, INFO, WARNING, ...)
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Sessions per day a new user aims for
	default_daily_goal: int = Field(default=3, validation_alias="DEFAULT_DAILY_GOAL")
	# Rules below this mastery are reported as weaknesses when no threshold is given
	weak_rule_threshold: int = Field(default=60, validation_alias="WEAK_RULE_THRESHOLD")
	# Upper bound on items returned by the due-review queues
	due_queue_limit: int = Field(default=50, validation_alias="DUE_QUEUE_LIMIT")
	# Default window for the activity timeline
	timeline_days: int = Field(default=30, validation_alias="TIMELINE_DAYS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
