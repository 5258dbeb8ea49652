from typing import Any

from app.core.config import SentryConfig

_SENSITIVE_KEYS = {
    "password",
    "temporary_password",
    "access_token",
    "token",
    "jwt",
    "authorization",
    "cookie",
    "set-cookie",
    "jwt_secret",
    "service_role_key",
    "smtp_password",
}


def _looks_like_file_payload(value: Any) -> bool:
    if isinstance(value, (bytes, bytearray)):
        head = bytes(value[:8])
        # PDF / 旧版 Word (OLE) / docx (zip)
        return head.startswith(b"%PDF-") or head.startswith(b"\xd0\xcf\x11\xe0") or head.startswith(b"PK")
    if isinstance(value, str):
        # 超长文本可能是稿件内容或 base64，不上报
        return len(value) > 5000
    return False


def _scrub(value: Any) -> Any:
    """
    隐私清洗：递归去除凭证类字段与稿件文件内容。
    """
    if _looks_like_file_payload(value):
        return "[Filtered]"

    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if str(k).strip().lower() in _SENSITIVE_KEYS:
                out[str(k)] = "[Filtered]"
                continue
            out[str(k)] = _scrub(v)
        return out

    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]

    return value


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    # 中文注释: 不上传请求体（multipart 稿件、登录密码），cookie 整体过滤（含会话 token）
    request = event.get("request")
    if isinstance(request, dict):
        headers = request.get("headers")
        if isinstance(headers, dict):
            request["headers"] = {
                k: v for k, v in headers.items() if str(k).strip().lower() not in _SENSITIVE_KEYS
            }
        for key in ("cookies", "data", "body"):
            if key in request:
                request[key] = "[Filtered]"
        event["request"] = request

    for section in ("extra", "contexts"):
        obj = event.get(section)
        if isinstance(obj, dict):
            event[section] = _scrub(obj)

    return event


def init_sentry() -> bool:
    """
    初始化 Sentry。

    - 未配置 DSN / 显式禁用时返回 False。
    - 初始化异常由调用方捕获，不得阻塞启动。
    """
    cfg = SentryConfig.from_env()
    if not cfg.enabled or not cfg.dsn:
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    options: dict[str, Any] = {
        "dsn": cfg.dsn,
        "environment": cfg.environment,
        "traces_sample_rate": cfg.traces_sample_rate,
        "integrations": [FastApiIntegration()],
        "send_default_pii": False,
        "before_send": _before_send,
        "max_request_body_size": "never",
    }
    try:
        sentry_sdk.init(**options)
    except Exception as exc:
        # 旧版 sentry-sdk 不认识 max_request_body_size 时降级重试
        if "Unknown option" in str(exc) or "unexpected keyword argument" in str(exc):
            options.pop("max_request_body_size", None)
            sentry_sdk.init(**options)
        else:
            raise
    return True
