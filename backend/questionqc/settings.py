from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyzerConfig(BaseModel):
	"""Everything the quality analyzer client needs, resolved once at startup."""

	model_config = ConfigDict(frozen=True)

	api_key: str | None = None
	provider: str = "ai_studio"
	model: str = "gemini-2.0-flash"
	vertex_region: str = "us-central1"
	vertex_project: str | None = None
	timeout_seconds: float = 30.0
	temperature: float = 0.2
	top_p: float = 0.8
	max_output_tokens: int = 2000

	@property
	def endpoint(self) -> str:
		if self.provider == "vertex":
			region = self.vertex_region
			project = self.vertex_project or "placeholder-project"
			return (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
		return f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"


class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Analyzer call tuning
	analyzer_timeout_seconds: float = Field(default=30.0, validation_alias="ANALYZER_TIMEOUT_SECONDS")
	analyzer_temperature: float = Field(default=0.2, validation_alias="ANALYZER_TEMPERATURE")

	# Questions analyzed concurrently per bulk batch
	bulk_batch_size: int = Field(default=3, validation_alias="BULK_BATCH_SIZE")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	access_token_expire_minutes: int = Field(default=120, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	def analyzer_config(self) -> AnalyzerConfig:
		return AnalyzerConfig(
			api_key=self.gemini_api_key,
			provider=self.gemini_provider,
			model=self.gemini_model,
			vertex_region=self.vertex_region,
			vertex_project=self.vertex_project,
			timeout_seconds=self.analyzer_timeout_seconds,
			temperature=self.analyzer_temperature,
		)

settings = Settings()
