import json
import logging

from bloodconnect.config import Settings
from bloodconnect.models.notification import Notification
from bloodconnect.services.effects import Email, Notify, Push
from bloodconnect.services.email import SmtpEmailSender, render_email
from bloodconnect.services.fanout import DatabaseNotificationFanout, EffectDispatcher, LoggingRealtimePush


class RecordingEmail:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to, template_key, data):
        if self.fail:
            raise ConnectionError("smtp down")
        self.sent.append((to, template_key, data))
        return True


class ExplodingNotifier:
    def send(self, *args, **kwargs):
        raise RuntimeError("database unavailable")


def test_notify_effects_become_notification_rows(db, session_factory, admin, make_donor):
    donor = make_donor()
    dispatcher = EffectDispatcher(
        notifier=DatabaseNotificationFanout(session_factory),
        email=RecordingEmail(),
        push=LoggingRealtimePush(),
    )

    outcome = dispatcher.dispatch([
        Notify([admin.id, donor.id], "request_created", "New Blood Request", "O+ needed", {"requestId": "r1"}),
    ])

    assert outcome == {"delivered": 1, "failed": 0}
    rows = db.query(Notification).order_by(Notification.user_id).all()
    assert {r.user_id for r in rows} == {admin.id, donor.id}
    assert all(json.loads(r.metadata_json) == {"requestId": "r1"} for r in rows)
    assert all(r.read == 0 for r in rows)


def test_failures_are_logged_and_do_not_stop_other_effects(caplog):
    email = RecordingEmail(fail=True)
    dispatcher = EffectDispatcher(notifier=ExplodingNotifier(), email=email, push=LoggingRealtimePush())

    with caplog.at_level(logging.INFO, logger="bloodconnect.services.fanout"):
        outcome = dispatcher.dispatch([
            Notify(["u1"], "t", "title", "message"),
            Email(["a@example.com"], "request_rejected", {"requestorName": "A", "reason": "r"}),
            Push("admins", "request_created", {"requestId": "r1"}),
        ])

    assert outcome == {"delivered": 1, "failed": 2}
    assert "Failed to dispatch Notify effect" in caplog.text
    assert "Failed to dispatch Email effect" in caplog.text
    assert "push[admins] request_created" in caplog.text


def test_unknown_push_audience_is_a_logged_failure():
    dispatcher = EffectDispatcher(notifier=ExplodingNotifier(), email=RecordingEmail(), push=LoggingRealtimePush())

    assert dispatcher.dispatch([Push("everyone", "x")]) == {"delivered": 0, "failed": 1}


def test_email_skipped_without_smtp_host():
    settings = Settings(
        secret_key="0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef",
        smtp_host=None,
    )

    assert SmtpEmailSender(settings).send(["a@example.com"], "request_approved", {}) is False


def test_render_email_templates():
    subject, html = render_email("donor_assigned", {
        "requestorName": "Riya",
        "bloodGroup": "O+",
        "donorName": "Sam",
        "donorEmail": "sam@example.com",
        "donorPhone": "555",
    })

    assert subject == "Donor Found for Your Blood Request"
    assert "sam@example.com" in html
    assert "Dear Riya" in html


def test_render_email_escapes_submitted_text():
    _, html = render_email("new_blood_request", {
        "requestorName": "<script>alert(1)</script>",
        "location": "<img src=x onerror=1>",
        "bloodGroup": "O+",
    })

    assert "<script>" not in html
    assert "<img" not in html
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in html


def test_render_email_escapes_rejection_reason():
    _, html = render_email("request_rejected", {"requestorName": "A & B", "reason": "<b>duplicate</b>"})

    assert "Dear A &amp; B" in html
    assert "&lt;b&gt;duplicate&lt;/b&gt;" in html
