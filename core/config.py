"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, BaseModel, Field, field_validator
from typing import Optional


class BackendSettings(BaseModel):
    """Upstream REST backend (orders, payments, settings)."""
    timeout: float = 30.0
    max_retries: int = 2
    retry_delay: float = 0.5
    # 令牌过期前多少秒视为"即将过期"，提前刷新
    token_refresh_buffer_seconds: int = 3600


class CheckoutSettings(BaseModel):
    link_max_attempts: int = 3
    link_backoff_seconds: float = 0.5
    payment_timeout_seconds: int = 300
    status_poll_interval_seconds: float = 5.0
    guest_email_domain: str = "nihemart.rw"


class RedisSettings(BaseModel):
    url: Optional[str] = None
    max_connections: int = 10
    default_ttl: int = 300
    namespace: str = "nihemart-gateway"


class SchedulerSettings(BaseModel):
    # Kigali 全年 UTC+2，无夏令时
    utc_offset_hours: int = 2
    off_start: str = "21:30"
    off_end: str = "09:00"
    # celery beat 调度间隔（秒）
    interval_seconds: int = 900


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(
        default="Nihemart Storefront Gateway",
        validation_alias=AliasChoices("PROJECT_NAME", "APP_NAME"),
    )
    VERSION: str = Field(default="1.0.0", validation_alias=AliasChoices("VERSION", "APP_VERSION"))
    DEBUG: bool = Field(default=True, validation_alias="DEBUG")
    ENVIRONMENT: str = Field(default="development", validation_alias="ENVIRONMENT")

    # 后端服务地址，兼容前端遗留变量名
    API_BASE_URL: str = Field(
        default="http://localhost:4000/api",
        validation_alias=AliasChoices("API_BASE_URL", "NEXT_PUBLIC_API_BASE", "NEXT_PUBLIC_API_URL"),
    )
    # 站点对外地址，用于拼接支付回跳地址
    PUBLIC_BASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PUBLIC_BASE_URL", "NEXT_PUBLIC_SITE_URL"),
    )

    # 服务间调用密钥（调度脚本使用）
    SERVICE_API_KEY: Optional[str] = Field(default=None, validation_alias="SERVICE_API_KEY")
    ADMIN_API_KEY: Optional[str] = Field(default=None, validation_alias="ADMIN_API_KEY")

    # 分组配置：嵌套模型，环境变量形如 BACKEND__TIMEOUT
    backend: BackendSettings = Field(default_factory=BackendSettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    # CORS配置
    CORS_ORIGINS: list = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        validation_alias="CORS_ORIGINS",
    )

    # 分页配置
    DEFAULT_PAGE_SIZE: int = Field(default=20, validation_alias="DEFAULT_PAGE_SIZE")

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True, validation_alias="LOG_REQUEST_BODY_ENABLE_BY_DEFAULT")
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048, validation_alias="LOG_REQUEST_BODY_MAX_BYTES")

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    @property
    def service_key(self) -> Optional[str]:
        """调度任务使用的服务密钥：SERVICE_API_KEY 优先，其次 ADMIN_API_KEY。"""
        return self.SERVICE_API_KEY or self.ADMIN_API_KEY

    @field_validator("API_BASE_URL", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """允许 JSON 字符串或逗号分隔字符串两种格式。"""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                import json
                try:
                    arr = json.loads(s)
                    if isinstance(arr, list):
                        return arr
                except ValueError:
                    pass
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()
