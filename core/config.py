"""
配置文件 - 项目配置管理
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from typing import Optional


class RedisSettings(BaseModel):
    url: Optional[str] = None
    max_connections: int = 10
    default_ttl: int = 0  # 0 = keys never expire unless a ttl is passed
    namespace: str = "freightfox"


class DatabaseSettings(BaseModel):
    # None keeps shipment orders in process memory
    url: Optional[str] = None
    echo: bool = False


class CheckoutSettings(BaseModel):
    # Gateway script
    script_url: str = "https://checkout.razorpay.com/v1/checkout.js"
    script_global: str = "Razorpay"
    script_max_retries: int = 3
    script_retry_delay_s: float = 1.0
    script_timeout_s: float = 10.0

    # Diagnostics
    frame_src_pattern: str = "api.razorpay.com"

    # Session / shared storage keys
    session_ttl_minutes: int = 30
    state_key: str = "freightfox_payment_state"
    session_key: str = "freightfox_payment_session"
    reconciliation_key: str = "freightfox_unreconciled_payments"

    # Widget presentation
    overlay_z_index: int = 2147483646
    merchant_name: str = "FreightFox"
    recovery_description: str = "Payment recovery"
    theme_color: str = "#3399cc"
    default_currency: str = "INR"
    carrier: str = "FreightFox"


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="FreightFox Payments", env=["PROJECT_NAME", "APP_NAME"])
    VERSION: str = Field(default="1.0.0", env=["VERSION", "APP_VERSION"])
    DEBUG: bool = Field(default=True, env="DEBUG")
    ENVIRONMENT: str = Field(default="development", env="ENVIRONMENT")

    # 分组配置：Redis/Database/Checkout 采用嵌套模型
    redis: RedisSettings = Field(default_factory=RedisSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    # Shared storage backend: auto (redis when configured) | redis | memory
    STORAGE_BACKEND: str = Field(default="auto", env="STORAGE_BACKEND")

    # CORS配置
    CORS_ORIGINS: list = Field(
        default=["http://localhost:3000", "http://localhost:5173", "http://localhost:8000"],
        env="CORS_ORIGINS"
    )

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True, env="LOG_REQUEST_BODY_ENABLE_BY_DEFAULT")
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048, env="LOG_REQUEST_BODY_MAX_BYTES")

    # WebSocket 心跳配置
    REALTIME_WS_IDLE_PING_INTERVAL_S: float = Field(default=30.0, env="REALTIME_WS_IDLE_PING_INTERVAL_S")
    REALTIME_WS_PONG_GRACE_S: float = Field(default=10.0, env="REALTIME_WS_PONG_GRACE_S")
    REALTIME_WS_MISSED_PING_LIMIT: int = Field(default=2, env="REALTIME_WS_MISSED_PING_LIMIT")

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

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
