import pytest
from PIL import ImageFont

from lab_inventory.labels import (
    ELLIPSIS, NAME_FONT, RASTER_SCALE, TEXT_WIDTH, LabelSynthesizer, QrRenderer,
    matrix_path, text_width, wrap_name
)
from lab_inventory.payload import decode_payload, encode_payload
from lab_inventory.status import StockStatus, low_stock_status

PAYLOAD = "https://lab.example.org/item/abc123?notify=1"


def test_status_for_consumables_and_tools():
    assert low_stock_status("consumable", 2, 5) == StockStatus.LOW
    assert low_stock_status("consumable", 5, 5) == StockStatus.LOW
    assert low_stock_status("consumable", 6, 5) == StockStatus.OK
    assert low_stock_status("consumable", None, None) == StockStatus.LOW
    assert low_stock_status("tool", 0, 10) is None
    assert low_stock_status("tool", 99, 1) is None


def test_short_name_single_line():
    assert wrap_name("Pipette Tips") == ["Pipette Tips"]
    assert wrap_name("   ") == []


def test_name_wraps_on_words():
    assert wrap_name("Nitrile gloves size medium box", 16, len) == ["Nitrile gloves", "size medium box"]


@pytest.mark.parametrize("name", [
    "Sterile filtered pipette tips 200 microlitre racked low retention graduated " * 3,
    "x" * 500,
    "a " * 200,
    "Extraordinarilylongreagentnamewithoutanyspaces and then some more words to overflow",
])
def test_long_names_truncate_to_two_lines(name):
    lines = wrap_name(name)
    assert len(lines) == 2
    assert lines[1].endswith(ELLIPSIS)
    assert all(text_width(line, NAME_FONT) <= TEXT_WIDTH for line in lines)


def test_truncation_happens_at_word_boundary():
    lines = wrap_name("alpha beta gamma delta epsilon zeta", 11, len)
    assert lines == ["alpha beta", "gamma…"]


def test_wide_glyphs_wrap_before_the_margin():
    lines = wrap_name("W" * 33)
    assert len(lines) == 2
    assert all(text_width(line, NAME_FONT) <= TEXT_WIDTH for line in lines)


def test_raster_names_are_measured_with_the_drawn_font():
    font = ImageFont.load_default(size=NAME_FONT * RASTER_SCALE)
    max_width = TEXT_WIDTH * RASTER_SCALE
    lines = wrap_name("W" * 33 + " Mmmm @@@@ wwww", max_width, font.getlength)
    assert 1 <= len(lines) <= 2
    assert all(font.getlength(line) <= max_width for line in lines)


def test_renderer_matrix_is_square():
    matrix = QrRenderer().matrix(PAYLOAD)
    assert len(matrix) == len(matrix[0])
    # version <= 10 plus a 4 module quiet zone each side
    assert len(matrix) <= 57 + 8
    assert matrix_path(matrix).startswith("M")


def test_svg_label_contains_name_badge_and_barcode():
    artifact = LabelSynthesizer().synthesize(PAYLOAD, "Pipette Tips", StockStatus.LOW)
    svg = artifact.content.decode("utf-8")
    assert artifact.mimetype == "image/svg+xml"
    assert artifact.encoded
    assert "Pipette Tips" in svg
    assert 'class="badge"' in svg and ">Low<" in svg
    assert "#fee2e2" in svg
    # barcode, then name, then badge in document order
    assert svg.index("<path") < svg.index('class="name"') < svg.index('class="badge"')


def test_badge_omitted_without_status():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "Torque wrench").content.decode("utf-8")
    assert 'class="badge"' not in svg


def test_ok_badge_uses_success_palette():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "Gloves", StockStatus.OK).content.decode("utf-8")
    assert "#dcfce7" in svg and ">OK<" in svg


def test_long_name_label_has_two_text_lines():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "very long name " * 30).content.decode("utf-8")
    assert svg.count('class="name"') == 2
    assert ELLIPSIS in svg


def test_markup_in_name_is_escaped():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "<script>alert('x')</script> & co").content.decode("utf-8")
    assert "<script>" not in svg
    assert "&lt;script&gt;" in svg
    assert "&amp; co" in svg


def test_encoding_failure_still_renders_placeholder():
    artifact = LabelSynthesizer().synthesize("https://x/" + "y" * 1000, "Buffer")
    svg = artifact.content.decode("utf-8")
    assert not artifact.encoded
    assert "encoding failed" in svg
    assert "Buffer" in svg


def test_overflowing_payload_is_an_encoding_failure():
    artifact = LabelSynthesizer().synthesize("z" * 5000, "Huge", fmt="png")
    assert not artifact.encoded
    assert artifact.content.startswith(b"\x89PNG")


def test_png_label():
    artifact = LabelSynthesizer().synthesize(PAYLOAD, "Pipette Tips", StockStatus.OK, fmt="png")
    assert artifact.mimetype == "image/png"
    assert artifact.content.startswith(b"\x89PNG")


def test_unknown_format_rejected():
    with pytest.raises(ValueError):
        LabelSynthesizer().synthesize(PAYLOAD, "x", fmt="gif")


def test_barcode_only():
    synth = LabelSynthesizer()
    svg = synth.barcode(PAYLOAD).content.decode("utf-8")
    assert "<path" in svg and "<text" not in svg
    assert synth.barcode(PAYLOAD, fmt="png").content.startswith(b"\x89PNG")
    failed = synth.barcode("q" * 4000)
    assert not failed.encoded and b"encoding failed" in failed.content


def test_label_payload_round_trip():
    payloads = []

    class Recorder(QrRenderer):
        def matrix(self, payload):
            payloads.append(payload)
            return super().matrix(payload)

    payload = encode_payload("https://lab.example.org", "abc123", notify=True)
    LabelSynthesizer(Recorder()).synthesize(payload, "Pipette Tips")
    assert decode_payload(payloads[0]) == ("abc123", True)


def test_item_id_printed_under_name():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "Pipette Tips", StockStatus.LOW,
                                        caption="abc123").content.decode("utf-8")
    assert 'class="item-id"' in svg and ">abc123<" in svg
    assert 'fill="#777"' in svg
    assert svg.index('class="name"') < svg.index('class="item-id"') < svg.index('class="badge"')


def test_item_id_is_escaped_and_kept_to_one_line():
    svg = LabelSynthesizer().synthesize(PAYLOAD, "Tips", caption="<b>" + "9" * 80).content.decode("utf-8")
    assert "<b>" not in svg and "&lt;b&gt;" in svg
    assert svg.count('class="item-id"') == 1
    assert ELLIPSIS in svg


def test_png_label_with_item_id_and_wide_name():
    artifact = LabelSynthesizer().synthesize(PAYLOAD, "W" * 33, StockStatus.LOW,
                                             fmt="png", caption="abc123")
    assert artifact.content.startswith(b"\x89PNG")
