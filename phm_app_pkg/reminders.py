# phm_app_pkg/reminders.py
"""
Guard around `Patient.last_assessment_reminder_sent`.

Senders claim a patient before contacting them. The claim is a single
conditional UPDATE, so of several concurrent senders exactly one sees its
row updated and goes on to send; the others back off. A failed send
releases the claim so the next run may retry.
"""
import datetime

from flask import current_app
from sqlalchemy import or_, update

from . import db
from .models import Patient


def claim_assessment_reminder(patient_id, now=None):
    """Stamp the reminder time if the patient is eligible. Returns True when this caller won the claim."""
    now = now or datetime.datetime.utcnow()
    resend_after = now - datetime.timedelta(hours=current_app.config.get('REMINDER_RESEND_HOURS', 12))

    result = db.session.execute(
        update(Patient)
        .where(
            Patient.id == patient_id,
            or_(Patient.last_assessment_reminder_sent.is_(None),
                Patient.last_assessment_reminder_sent < resend_after)
        )
        .values(last_assessment_reminder_sent=now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()

    claimed = result.rowcount == 1
    if claimed:
        current_app.logger.info(f"[Reminder] Claimed assessment reminder for patient {patient_id}.")
    else:
        current_app.logger.info(f"[Reminder] Patient {patient_id} not eligible for a reminder (already claimed).")
    return claimed


def release_assessment_reminder(patient_id):
    db.session.execute(
        update(Patient)
        .where(Patient.id == patient_id)
        .values(last_assessment_reminder_sent=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.warning(f"[Reminder] Released assessment reminder for patient {patient_id} after a failed send.")
