import logging
import resend
from typing import Any, Dict, Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape
from pathlib import Path
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from app.core.config import SMTPConfig, ResendConfig

logger = logging.getLogger("paperdesk.mail")


class EmailService:
    _SENTINEL = object()

    def __init__(
        self,
        *,
        smtp_config: SMTPConfig | None | object = _SENTINEL,
        resend_config: ResendConfig | None | object = _SENTINEL,
        templates_dir: Optional[Path] = None,
    ):
        # 中文注释:
        # - smtp_config / resend_config 支持依赖注入，方便单测与不同环境切换。
        # - 若调用方显式传 None，则视为禁用该 provider；两者都缺省时降级为“只记录日志”。
        if smtp_config is self._SENTINEL:
            smtp_config = SMTPConfig.from_env()
        if resend_config is self._SENTINEL:
            resend_config = ResendConfig.from_env()

        self.smtp_config: SMTPConfig | None = smtp_config  # type: ignore[assignment]
        self.resend_config: ResendConfig | None = resend_config  # type: ignore[assignment]

        if self.resend_config:
            resend.api_key = self.resend_config.api_key

        # Path to templates: backend/app/core/templates
        templates_dir = templates_dir or Path(__file__).resolve().parent / "templates"
        self._jinja = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def is_configured(self) -> bool:
        return bool(self.smtp_config or self.resend_config)

    def render_template(self, template_name: str, context: Dict[str, Any]) -> str:
        return self._jinja.get_template(template_name).render(**context)

    def _send_smtp(self, to_email: str, subject: str, html_body: str, text_body: str | None) -> None:
        cfg = self.smtp_config
        if cfg is None:
            raise RuntimeError("SMTP is not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = formataddr((cfg.from_name, cfg.from_email))
        msg["To"] = to_email
        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        smtp_cls = smtplib.SMTP_SSL if cfg.use_ssl else smtplib.SMTP
        with smtp_cls(cfg.host, cfg.port) as server:
            if cfg.use_starttls and not cfg.use_ssl:
                server.starttls()
            if cfg.user and cfg.password:
                server.login(cfg.user, cfg.password)
            server.sendmail(cfg.from_email, [to_email], msg.as_string())

    def send_email(
        self,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
    ) -> bool:
        """
        发送邮件（同步）。失败只记录日志并返回 False，从不向上抛出。

        中文注释:
        - 优先 SMTP；SMTP 未配置但 Resend 已配置时走 Resend。
        - 两者都未配置：记录一条日志后返回 False（本地/测试环境）。
        """
        if self.smtp_config:
            try:
                self._send_smtp(to_email, subject, html_body, text_body)
                return True
            except Exception as e:
                logger.warning(f"[SMTP] send to {to_email} failed: {e}")
                return False

        if self.resend_config:
            try:
                resend.Emails.send(
                    {
                        "from": self.resend_config.sender,
                        "to": [to_email],
                        "subject": subject,
                        "html": html_body,
                    }
                )
                return True
            except Exception as e:
                logger.warning(f"[Resend] send to {to_email} failed: {e}")
                return False

        logger.info(f"[Email] transport not configured, skipped: to={to_email} subject={subject!r}")
        return False

    def send_template_email(
        self,
        *,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict[str, Any],
        text_body: str | None = None,
    ) -> bool:
        if not self.is_configured():
            logger.info(f"[Email] transport not configured, skipped: to={to_email} subject={subject!r}")
            return False
        try:
            html = self.render_template(template_name, context)
        except Exception as e:
            logger.warning(f"[Email] template {template_name} render failed: {e}")
            return False
        return self.send_email(to_email=to_email, subject=subject, html_body=html, text_body=text_body)


# Global instance
email_service = EmailService()
