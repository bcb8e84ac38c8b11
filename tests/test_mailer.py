import smtplib
from types import SimpleNamespace

import pytest

from fleet_alerts.errors import DeliveryError
from fleet_alerts.mailer import SmtpMailer


class FakeSMTP:
    instances: list["FakeSMTP"] = []
    fail = False

    def __init__(self, host: str, port: int, timeout: float) -> None:
        self.host, self.port, self.timeout = host, port, timeout
        self.calls: list[str] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def starttls(self) -> None:
        self.calls.append("starttls")

    def login(self, user: str, password: str) -> None:
        self.calls.append(f"login:{user}")

    def sendmail(self, sender: str, to: list[str], body: str) -> None:
        if FakeSMTP.fail:
            raise smtplib.SMTPRecipientsRefused({})
        self.calls.append(f"send:{sender}->{','.join(to)}")


@pytest.fixture(autouse=True)
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail = False
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def _mailer() -> SmtpMailer:
    return SmtpMailer(
        "smtp.example.com",
        username="bot",
        password="pw",
        sender_address="alerts@example.com",
        sender_name="Fleet Alerts",
    )


def test_build_message_headers() -> None:
    msg = _mailer().build_message(["a@example.com", "b@example.com"], "Subj", "Body")

    assert msg["Subject"] == "Subj"
    assert msg["From"] == "Fleet Alerts <alerts@example.com>"
    assert msg["To"] == "a@example.com, b@example.com"


def test_send_uses_starttls_and_login() -> None:
    _mailer().send(["ops@example.com"], "Subj", "Body")

    [smtp] = FakeSMTP.instances
    assert (smtp.host, smtp.port) == ("smtp.example.com", 587)
    assert smtp.calls == [
        "starttls",
        "login:bot",
        "send:alerts@example.com->ops@example.com",
    ]


def test_send_failure_raises_delivery_error() -> None:
    FakeSMTP.fail = True

    with pytest.raises(DeliveryError):
        _mailer().send(["ops@example.com"], "Subj", "Body")


def test_from_settings_requires_host() -> None:
    settings = SimpleNamespace(SMTP_HOST=None)

    assert SmtpMailer.from_settings(settings) is None
