from pydantic import BaseModel, ConfigDict, Field


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class PrivacyRules(BaseModel):
    hash_secret_env: str = "VEILSTAT_HASH_SECRET"
    session_timeout_minutes: int = Field(default=30, gt=0)
    pseudonym_length: int = Field(default=16, ge=8, le=64)


class IngestionRules(BaseModel):
    allowed_kinds: list[str] = ["pageview", "event", "engagement", "heartbeat"]
    session_bearing_kinds: list[str] = ["pageview", "engagement", "heartbeat"]
    max_clock_skew_seconds: int = Field(default=3600, gt=0)
    max_batch_size: int = Field(default=100, gt=0)
    max_path_length: int = Field(default=2048, gt=0)


class BotRules(BaseModel):
    extra_patterns: list[str] = []
    treat_unknown_as: str = Field(default="real", pattern="^(real|bot)$")


class RateLimitWindow(BaseModel):
    window_seconds: int
    max_requests: int


class RateLimitRules(BaseModel):
    collect: RateLimitWindow = RateLimitWindow(window_seconds=60, max_requests=600)


class QueryRules(BaseModel):
    max_range_days: int = 90
    default_limit: int = 100
    max_limit: int = 1000


class AlertCooldownRules(BaseModel):
    threshold: int = 60
    comparison: int = 1440
    anomaly: int = 360


class SensitivityRules(BaseModel):
    low: float = 3.0
    medium: float = 2.0
    high: float = 1.5


class AlertRules(BaseModel):
    cooldown_minutes: AlertCooldownRules = AlertCooldownRules()
    sensitivity: SensitivityRules = SensitivityRules()
    baseline_periods: int = Field(default=7, ge=2)
    poll_interval_seconds: int = Field(default=60, gt=0)
    webhook_max_attempts: int = Field(default=3, ge=1)
    webhook_timeout_seconds: float = Field(default=5.0, gt=0)


class RealtimeRules(BaseModel):
    default_window_minutes: int = 30
    max_window_minutes: int = 1440
    top_n: int = 10
    recent_events: int = 50
    peak_bucket_minutes: int = 5


class Rules(BaseModel):
    model_config = ConfigDict(extra="allow")

    project: ProjectRules
    privacy: PrivacyRules = PrivacyRules()
    ingestion: IngestionRules = IngestionRules()
    bots: BotRules = BotRules()
    rate_limits: RateLimitRules = RateLimitRules()
    query: QueryRules = QueryRules()
    alerts: AlertRules = AlertRules()
    realtime: RealtimeRules = RealtimeRules()
