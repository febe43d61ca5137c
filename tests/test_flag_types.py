from decimal import Decimal

from sqlalchemy import text

from drawdesk.models import DrawLineFlag, DrawStatus
from drawdesk.models.types import parse_flags, serialize_flags


def test_parse_flags_accepts_json_and_comma_text():
    assert parse_flags('["NO_INVOICE", "LOW_CONFIDENCE"]') == {
        DrawLineFlag.NO_INVOICE,
        DrawLineFlag.LOW_CONFIDENCE,
    }
    assert parse_flags("no_invoice, AMOUNT_MISMATCH") == {
        DrawLineFlag.NO_INVOICE,
        DrawLineFlag.AMOUNT_MISMATCH,
    }
    assert parse_flags("") == frozenset()
    assert parse_flags(None) == frozenset()


def test_parse_flags_drops_unknown_tags():
    assert parse_flags("NO_INVOICE,SOMETHING_ELSE") == {DrawLineFlag.NO_INVOICE}


def test_serialize_flags_is_sorted_json():
    assert serialize_flags({DrawLineFlag.NO_INVOICE, DrawLineFlag.AMOUNT_MISMATCH}) == (
        '["AMOUNT_MISMATCH", "NO_INVOICE"]'
    )
    assert serialize_flags(frozenset()) is None


def test_legacy_flag_text_loads_as_flag_set(db_session, make_project, make_budget, make_draw):
    project = make_project()
    budget = make_budget(project, "Framing")
    draw = make_draw(project, (budget, "1000"))
    line = draw.lines[0]

    db_session.execute(
        text("UPDATE draw_request_lines SET flags = :flags WHERE id = :id"),
        {"flags": "NO_INVOICE,AMOUNT_MISMATCH", "id": line.id},
    )
    db_session.refresh(line)

    assert line.flags == {DrawLineFlag.NO_INVOICE, DrawLineFlag.AMOUNT_MISMATCH}

    line.flags = frozenset({DrawLineFlag.LOW_CONFIDENCE})
    db_session.flush()
    stored = db_session.execute(
        text("SELECT flags FROM draw_request_lines WHERE id = :id"), {"id": line.id}
    ).scalar_one()
    assert stored == '["LOW_CONFIDENCE"]'


def test_legacy_paid_status_loads_as_funded(db_session, make_project, make_budget, make_draw):
    project = make_project()
    draw = make_draw(project, (make_budget(project, "Framing"), "1000"))

    db_session.execute(
        text("UPDATE draw_requests SET status = 'paid' WHERE id = :id"), {"id": draw.id}
    )
    db_session.refresh(draw)

    assert draw.status == DrawStatus.FUNDED
    assert draw.status.is_terminal
    assert draw.total_amount == Decimal("1000")
