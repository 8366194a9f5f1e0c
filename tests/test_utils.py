import base64
import io

import pytest

from whatsapp_bridge.core.exceptions import MalformedSessionInitError
from whatsapp_bridge.utils.phone_utils import is_jid, jid_to_phone, normalize_phone_to_jid
from whatsapp_bridge.services.qr_service import print_qr_terminal, render_qr_data_url
from whatsapp_bridge.utils.validation_utils import is_session_init, parse_session_init


@pytest.mark.parametrize("phone, expected", [
    ("+15551234567", "15551234567@s.whatsapp.net"),
    ("0612345678", "212612345678@s.whatsapp.net"),
    ("612345678", "212612345678@s.whatsapp.net"),
    ("  0612345678 ", "212612345678@s.whatsapp.net"),
    ("15551234567@s.whatsapp.net", "15551234567@s.whatsapp.net"),
])
def test_normalize_phone_to_jid(phone, expected):
    assert normalize_phone_to_jid(phone, country_code="212") == expected


def test_normalize_uses_configured_country_code():
    assert normalize_phone_to_jid("0612345678", country_code="33") == "33612345678@s.whatsapp.net"


def test_is_jid():
    assert is_jid("15551234567@s.whatsapp.net")
    assert not is_jid("15551234567")
    assert not is_jid("")


def test_jid_to_phone_drops_device_part():
    assert jid_to_phone("15551234567@s.whatsapp.net") == "15551234567"
    assert jid_to_phone("15551234567:3@s.whatsapp.net") == "15551234567"


def test_is_session_init():
    assert is_session_init("IA-AUTO:42-7", "IA-AUTO:")
    assert is_session_init("  IA-AUTO:42-7", "IA-AUTO:")
    assert not is_session_init("Bonjour IA-AUTO:42-7", "IA-AUTO:")
    assert not is_session_init("", "IA-AUTO:")


@pytest.mark.parametrize("text, expected", [
    ("IA-AUTO:42-7", ("42", "7")),
    ("IA-AUTO: 42-7 ", ("42", "7")),
    ("IA-AUTO:shop_1-sku_99", ("shop_1", "sku_99")),
])
def test_parse_session_init(text, expected):
    assert parse_session_init(text, "IA-AUTO:") == expected


@pytest.mark.parametrize("text", [
    "IA-AUTO:42",
    "IA-AUTO:-7",
    "IA-AUTO:42-",
    "IA-AUTO:42-7-3",
    "IA-AUTO:42-7 merci",
])
def test_parse_session_init_rejects_malformed(text):
    with pytest.raises(MalformedSessionInitError) as exc_info:
        parse_session_init(text, "IA-AUTO:")

    assert exc_info.value.code == "VALIDATION_ERROR"


def test_qr_rendered_as_svg_data_url():
    data_url = render_qr_data_url("2@abcdef,ghijkl,mnopqr")

    assert data_url.startswith("data:image/svg+xml;base64,")
    assert b"<svg" in base64.b64decode(data_url.split(",", 1)[1])


def test_qr_printed_for_terminal():
    out = io.StringIO()

    print_qr_terminal("2@abcdef,ghijkl,mnopqr", out=out)

    assert len(out.getvalue().splitlines()) > 10
