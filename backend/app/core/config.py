import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int) -> int:
    raw = (os.environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class AppConfig:
    """
    Application Environment Config
    """
    env: str  # 'development', 'test', 'staging', 'production'
    database_url: str
    record_store: str  # 'postgres' | 'memory'
    supabase_url: str
    supabase_key: str

    @property
    def is_production(self) -> bool:
        return self.env in {"prod", "production"}

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()

        # 中文注释:
        # - 业务数据走 Supabase 的 Postgres（psycopg2 直连以获得真实事务）。
        # - 兼容 DATABASE_URL / SUPABASE_DB_URL 两种变量名。
        database_url = ""
        for key in ("DATABASE_URL", "SUPABASE_DB_URL"):
            raw = (os.environ.get(key) or "").strip()
            if raw:
                database_url = raw
                break

        # 未配置数据库时本地/测试默认使用内存存储，避免启动即失败
        default_store = "postgres" if database_url else "memory"
        record_store = (os.environ.get("RECORD_STORE") or default_store).strip().lower()

        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_key = (os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or "").strip()

        return AppConfig(
            env=env,
            database_url=database_url,
            record_store=record_store,
            supabase_url=supabase_url,
            supabase_key=supabase_key,
        )

# Global Config Instance
app_config = AppConfig.from_env()


@dataclass(frozen=True)
class AuthConfig:
    """
    会话令牌配置

    中文注释:
    - JWT_SECRET（或 SECRET_KEY）生产环境必须显式配置，缺失时直接报错；
      仅非生产环境才回退到开发密钥。
    - 令牌同时通过响应体与 HttpOnly cookie 下发（cookie 名固定为 token）。
    """

    jwt_secret: str
    algorithm: str
    expires_days: int
    cookie_name: str
    cookie_secure: bool

    @staticmethod
    def from_env() -> "AuthConfig":
        secret = (os.environ.get("JWT_SECRET") or os.environ.get("SECRET_KEY") or "").strip()
        if not secret:
            if AppConfig.from_env().is_production:
                raise RuntimeError("JWT_SECRET is not configured")
            secret = "dev-secret-change-me"

        return AuthConfig(
            jwt_secret=secret,
            algorithm="HS256",
            expires_days=_env_int("JWT_EXPIRES_DAYS", 7),
            cookie_name="token",
            cookie_secure=_env_bool("COOKIE_SECURE", True),
        )


@dataclass(frozen=True)
class StorageConfig:
    """
    稿件文件存储（Supabase Storage）配置
    """

    bucket: str
    folder: str
    max_upload_bytes: int
    signed_url_ttl: int

    @staticmethod
    def from_env() -> "StorageConfig":
        bucket = (os.environ.get("STORAGE_BUCKET") or "papers").strip()
        folder = (os.environ.get("STORAGE_FOLDER") or "conference_papers").strip().strip("/")
        max_mb = _env_int("MAX_UPLOAD_MB", 20)
        return StorageConfig(
            bucket=bucket,
            folder=folder,
            max_upload_bytes=max_mb * 1024 * 1024,
            signed_url_ttl=_env_int("SIGNED_URL_TTL", 600),
        )


@dataclass(frozen=True)
class SMTPConfig:
    """
    SMTP 配置（从环境变量读取）

    中文注释:
    1) 该配置只存在于后端进程内，严禁泄露到前端。
    2) 允许在本地/测试环境缺省（此时邮件发送逻辑会优雅降级为“只记录日志”）。
    """

    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    from_email: str
    from_name: str
    use_ssl: bool
    use_starttls: bool

    @staticmethod
    def from_env() -> Optional["SMTPConfig"]:
        host = (os.environ.get("SMTP_HOST") or "").strip()
        if not host:
            return None

        port = _env_int("SMTP_PORT", 587)

        user = (os.environ.get("SMTP_USER") or "").strip() or None
        password = (
            os.environ.get("SMTP_PASSWORD") or os.environ.get("SMTP_PASS") or ""
        ).strip() or None

        from_email = (
            os.environ.get("SMTP_FROM_EMAIL") or user or "no-reply@paperdesk.local"
        ).strip()
        from_name = (os.environ.get("EMAIL_FROM") or "Conference Admin").strip()

        # 465 端口为隐式 TLS，其余端口默认 STARTTLS
        use_ssl = port == 465
        use_starttls = _env_bool("SMTP_USE_STARTTLS", not use_ssl)

        return SMTPConfig(
            host=host,
            port=port,
            user=user,
            password=password,
            from_email=from_email,
            from_name=from_name,
            use_ssl=use_ssl,
            use_starttls=use_starttls,
        )


@dataclass(frozen=True)
class ResendConfig:
    """
    Resend API Configuration (production email fallback)
    """
    api_key: str
    sender: str

    @staticmethod
    def from_env() -> Optional["ResendConfig"]:
        api_key = (os.environ.get("RESEND_API_KEY") or "").strip()
        if not api_key:
            return None

        sender = (
            os.environ.get("EMAIL_SENDER") or "Conference Admin <onboarding@resend.dev>"
        ).strip()

        return ResendConfig(api_key=api_key, sender=sender)


@dataclass(frozen=True)
class SentryConfig:
    enabled: bool
    dsn: str
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip()
        enabled = _env_bool("SENTRY_ENABLED", bool(dsn))
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()
        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0").strip()
        try:
            rate = float(raw_rate)
        except ValueError:
            rate = 0.0
        return SentryConfig(
            enabled=enabled,
            dsn=dsn,
            environment=environment,
            traces_sample_rate=rate,
        )
