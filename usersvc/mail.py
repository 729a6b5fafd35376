"""Send templated e-mail over SMTP."""

from typing import Any, Mapping, Optional
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import logging
import smtplib

from jinja2 import Environment, PackageLoader, select_autoescape

logger = logging.getLogger(__name__)

VERIFY_EMAIL_TEMPLATE = 'verify_email.html'
VERIFY_EMAIL_SUBJECT = 'Verify your email address'


class MailDeliveryFailed(RuntimeError):
    """The SMTP service did not accept the message."""


class Mailer:
    """
    Renders HTML templates and delivers them over SMTP.

    If ``host`` is empty, delivery is disabled and messages are only
    logged.
    """

    def __init__(self, host: str = '', port: int = 587,
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 sender: str = 'no-reply@localhost',
                 use_tls: bool = True) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._sender = sender
        self._use_tls = use_tls
        self._templates = Environment(
            loader=PackageLoader('usersvc', 'templates'),
            autoescape=select_autoescape(['html'])
        )

    @property
    def enabled(self) -> bool:
        return bool(self._host)

    def render(self, template: str, data: Mapping[str, Any]) -> str:
        """Render a template from ``usersvc/templates``."""
        return self._templates.get_template(template).render(**data)

    def send(self, to: str, subject: str, template: str,
             data: Mapping[str, Any]) -> None:
        """
        Render ``template`` with ``data`` and send it to ``to``.

        Raises
        ------
        :class:`MailDeliveryFailed`

        """
        body = self.render(template, data)
        if not self.enabled:
            logger.info('Mail delivery disabled; not sending %s to %s',
                        template, to)
            return

        message = MIMEMultipart()
        message['From'] = self._sender
        message['To'] = to
        message['Subject'] = subject
        message.attach(MIMEText(body, 'html', 'utf-8'))
        try:
            with smtplib.SMTP(self._host, self._port) as server:
                if self._use_tls:
                    server.starttls()
                if self._username and self._password:
                    server.login(self._username, self._password)
                server.sendmail(self._sender, [to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error('Failed to send %s to %s: %s', template, to, e)
            raise MailDeliveryFailed(f'Could not send mail to {to}') from e
        logger.debug('Sent %s to %s', template, to)
