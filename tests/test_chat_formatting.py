from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

from adapters.chat_formatting import format_chat_line, format_session_label
from core.models import CHAT_GROUP, CHAT_IM
from core.slt_time import format_slt, format_slt_with_date, to_slt

from fakes import GROUP_ID, make_message


def test_slt_follows_pacific_daylight_saving() -> None:
    winter = datetime(2024, 1, 15, 20, 30, tzinfo=timezone.utc)
    summer = datetime(2024, 7, 15, 20, 30, tzinfo=timezone.utc)

    assert format_slt(winter) == "12:30:00"
    assert format_slt(summer) == "13:30:00"
    assert format_slt_with_date(summer) == "Jul 15, 13:30:00"


def test_naive_timestamps_are_treated_as_utc() -> None:
    naive = datetime(2024, 1, 1, 3, 0, 0)

    assert format_slt_with_date(naive) == "Dec 31, 19:00:00"
    assert to_slt(naive).utcoffset().total_seconds() == -8 * 3600


def test_session_labels() -> None:
    im = make_message(chat_type=CHAT_IM)
    group = dataclasses.replace(
        make_message(chat_type=CHAT_GROUP, target_id=GROUP_ID), session_name="Builders"
    )
    local = dataclasses.replace(make_message(), region_name="Ahern")

    assert format_session_label(im) == "IM: Some Resident"
    assert format_session_label(group) == "Group: Builders"
    assert format_session_label(local) == "Local: Ahern"
    assert format_session_label(make_message()) == "Local"


def test_chat_line_rendering() -> None:
    plain = make_message("hi all")
    emote = make_message("/me waves")
    channel = dataclasses.replace(make_message("ping"), channel=7)

    assert format_chat_line(plain) == "[Jan 15, 12:30:00] Some Resident: hi all"
    assert format_chat_line(emote) == "[Jan 15, 12:30:00] Some Resident waves"
    assert format_chat_line(channel) == "[Jan 15, 12:30:00] (7) Some Resident: ping"


def test_chat_line_prefers_precomputed_stamp() -> None:
    message = dataclasses.replace(make_message("hi"), slt_date_time="Feb 01, 00:00:00")

    assert format_chat_line(message) == "[Feb 01, 00:00:00] Some Resident: hi"
