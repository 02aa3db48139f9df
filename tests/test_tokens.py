import re

import pytest
from sqlalchemy.exc import IntegrityError

from clientdesk.core.security import generate_action_token, mask_token
from clientdesk.models.appointment import Appointment

HEX_32 = re.compile(r"^[0-9a-f]{32}$")


def test_token_format():
    token = generate_action_token()
    assert HEX_32.match(token)


def test_token_length_follows_byte_count():
    assert len(generate_action_token(32)) == 64


def test_no_collisions_in_large_sample():
    tokens = {generate_action_token() for _ in range(10_000)}
    assert len(tokens) == 10_000


def test_appointment_tokens_distinct(make_appointment):
    appointments = [make_appointment() for _ in range(20)]

    tokens = []
    for appt in appointments:
        own = {appt.confirm_token, appt.cancel_token, appt.reschedule_token}
        assert len(own) == 3
        tokens.extend(own)
    assert len(set(tokens)) == len(tokens)


def test_token_columns_are_unique(db, make_appointment):
    existing = make_appointment()

    duplicate = Appointment(
        client_id=existing.client_id,
        starts_at=existing.starts_at,
        duration_min=30,
        confirm_token=existing.confirm_token,
        cancel_token=generate_action_token(),
        reschedule_token=generate_action_token(),
    )
    db.add(duplicate)
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_mask_token():
    assert mask_token("abcdef0123456789") == "abcdef..."
    assert mask_token(None) == "<none>"
