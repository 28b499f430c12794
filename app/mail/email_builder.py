"""Build account emails from Jinja2 templates.

Each email kind has an HTML and a plain-text template under `templates/`,
rendered with the same context.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import settings

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"
_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)

TEMPLATES = {
    "welcome": {
        "template": "welcome",
        "subject": "Welcome to Melhik CMS - Your Account is Ready!",
    },
    "password_reset": {
        "template": "password_reset",
        "subject": "Password Reset - Melhik CMS",
    },
    "smtp_test": {
        "template": "smtp_test",
        "subject": "SMTP test from Melhik CMS ({{ config_name }})",
    },
}


@dataclass
class EmailTemplate:
    """A rendered email: subject plus HTML and text bodies."""

    subject: str
    html: str
    text: str


def default_login_url() -> str:
    return f"{settings.app_base_url.rstrip('/')}/login"


def _render(kind: str, **context) -> EmailTemplate:
    config = TEMPLATES.get(kind)
    if not config:
        raise ValueError(f"Unknown email template: {kind}")

    html = _env.get_template(f"{config['template']}.html").render(**context)
    text = _env.get_template(f"{config['template']}.txt").render(**context)
    subject = _env.from_string(config["subject"]).render(**context)
    return EmailTemplate(subject=subject, html=html, text=text)


def build_welcome_email(
    username: str,
    temporary_password: str,
    login_url: str | None = None,
    admin_name: str | None = None,
) -> EmailTemplate:
    """Welcome email carrying the new account's temporary credentials.

    Args:
        username: The new account's username.
        temporary_password: Plain temporary password to deliver.
        login_url: Where to sign in. Defaults to the admin app login page.
        admin_name: Creating admin, shown as a greeting when present.
    """
    return _render(
        "welcome",
        username=username,
        temporary_password=temporary_password,
        login_url=login_url or default_login_url(),
        admin_name=admin_name,
    )


def build_password_reset_email(
    username: str,
    reset_url: str | None = None,
    temporary_password: str | None = None,
) -> EmailTemplate:
    return _render(
        "password_reset",
        username=username,
        reset_url=reset_url or default_login_url(),
        temporary_password=temporary_password,
    )


def build_smtp_test_email(config_name: str, host: str, port: int) -> EmailTemplate:
    return _render("smtp_test", config_name=config_name, host=host, port=port)
