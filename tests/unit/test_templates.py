"""
Unit tests for the template resolver.
"""
from __future__ import annotations

import pytest

from apps.notifier.templates import (
    DEFAULT_SUBJECTS,
    DEFAULT_TEMPLATES,
    ELLIPSIS,
    TemplateResolver,
    build_template_context,
    fit_sms,
    record_type_label,
)
from packages.shared.errors import TemplateMissing
from packages.shared.models import Channel, NotificationEvent, NotificationKind
from tests.fixtures.notify_fixtures import make_event


def _context(kind: str = "appointment_created", **payload_overrides) -> dict:
    raw = make_event(kind)
    raw["payload"].update(payload_overrides)
    return build_template_context(NotificationEvent.model_validate(raw), "Test Hospital")


class TestRegistry:
    def test_default_registry_covers_every_pair(self):
        resolver = TemplateResolver()
        for kind in NotificationKind:
            ctx = _context(kind.value)
            for channel in Channel:
                assert resolver.resolve(kind, channel, ctx).strip()
            assert resolver.subject(kind, ctx).strip()

    def test_missing_template_fails_at_construction(self):
        templates = dict(DEFAULT_TEMPLATES)
        del templates[(NotificationKind.QUEUE_STATUS_CHANGED, Channel.EMAIL)]
        with pytest.raises(TemplateMissing, match="queue_status_changed/email"):
            TemplateResolver(templates=templates)

    def test_missing_subject_fails_at_construction(self):
        subjects = dict(DEFAULT_SUBJECTS)
        del subjects[NotificationKind.PATIENT_REGISTERED]
        with pytest.raises(TemplateMissing, match="patient_registered/subject"):
            TemplateResolver(subjects=subjects)


class TestSms:
    def test_appointment_sms_mentions_doctor_date_and_time(self):
        text = TemplateResolver().resolve(NotificationKind.APPOINTMENT_CREATED, Channel.SMS, _context())
        assert "Dr. Somchai" in text
        assert "2025-03-14" in text
        assert "09:30" in text
        assert text.startswith("Test Hospital:")

    def test_trailing_clauses_dropped_to_fit(self):
        resolver = TemplateResolver(sms_max_length=120)
        text = resolver.resolve(NotificationKind.APPOINTMENT_CREATED, Channel.SMS, _context())
        assert len(text) <= 120
        assert text.endswith("Queue no. A012.")
        assert "Department" not in text
        assert ELLIPSIS not in text

    def test_long_first_clause_is_cut_with_ellipsis(self):
        ctx = _context(doctor="Dr. " + "Longname" * 60)
        text = TemplateResolver().resolve(NotificationKind.APPOINTMENT_CREATED, Channel.SMS, ctx)
        assert len(text) <= 320
        assert text.endswith(ELLIPSIS)

    def test_optional_clauses_omitted_when_absent(self):
        ctx = _context(queue_number=None, department=None, estimated_wait_minutes=None)
        text = TemplateResolver().resolve(NotificationKind.APPOINTMENT_CREATED, Channel.SMS, ctx)
        assert "Queue no." not in text
        assert "Department" not in text

    def test_fit_sms_keeps_first_clause_order(self):
        assert fit_sms(["one.", "two.", "three."], 100) == "one. two. three."
        assert fit_sms(["one.", "two.", "three."], 9) == "one. two."
        assert fit_sms(["abcdefghij"], 5) == "abcd" + ELLIPSIS
        assert fit_sms(["", "  ", "x"], 10) == "x"


class TestEmailAndInApp:
    def test_email_escapes_payload_values(self):
        ctx = _context(notes="<script>alert(1)</script>")
        body = TemplateResolver().resolve(NotificationKind.APPOINTMENT_CREATED, Channel.EMAIL, ctx)
        assert body.startswith("<!DOCTYPE html>")
        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    def test_email_marks_missing_rows(self):
        ctx = _context(treatment_type=None)
        body = TemplateResolver().resolve(NotificationKind.APPOINTMENT_CREATED, Channel.EMAIL, ctx)
        assert "<tr><th>Treatment type</th><td>Not provided</td></tr>" in body

    def test_in_app_is_a_single_line(self):
        ctx = _context("record_updated", message="Line one.\nLine two.")
        text = TemplateResolver().resolve(NotificationKind.RECORD_UPDATED, Channel.IN_APP, ctx)
        assert "\n" not in text
        assert text == "Vital signs updated by Nurse Ploy: Line one. Line two."

    def test_event_without_actor(self):
        raw = make_event("record_updated")
        del raw["actor"]
        ctx = build_template_context(NotificationEvent.model_validate(raw), "Test Hospital")
        resolver = TemplateResolver()
        text = resolver.resolve(NotificationKind.RECORD_UPDATED, Channel.IN_APP, ctx)
        assert text.startswith("Vital signs updated: ")
        body = resolver.resolve(NotificationKind.RECORD_UPDATED, Channel.EMAIL, ctx)
        assert "Sent on behalf of Test Hospital" in body
        assert "<tr><th>Recorded by</th><td>Not provided</td></tr>" in body

    def test_subject_uses_queue_number(self):
        subject = TemplateResolver().subject(NotificationKind.APPOINTMENT_CREATED, _context())
        assert subject == "New appointment - queue no. A012"


def test_record_type_labels():
    assert record_type_label("lab_result") == "lab result"
    assert record_type_label(" VITAL_SIGNS ") == "vital signs"
    assert record_type_label("unknown_kind") == "medical information"
    assert record_type_label(None) == "medical information"
