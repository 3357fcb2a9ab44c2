from lab_inventory.labels import LabelArtifact, LabelSynthesizer
from lab_inventory.printing import PrintAdapter
from lab_inventory.status import StockStatus


def test_inline_svg_auto_prints_and_closes():
    artifact = LabelSynthesizer().synthesize("https://x/item/abc?notify=1", "Pipette Tips", StockStatus.LOW)
    html = PrintAdapter().wrap(artifact, title="Print Label - Pipette Tips")
    assert html.startswith("<!doctype html>")
    assert "<svg" in html
    assert "window.onload = printAndClose" in html
    assert "window.print()" in html and "window.close()" in html
    assert 'id="label-error" class="placeholder" hidden' in html


def test_title_is_escaped():
    html = PrintAdapter().wrap(None, title="Print Label - <b>x</b>")
    assert "<b>x</b>" not in html
    assert "&lt;b&gt;x&lt;/b&gt;" in html


def test_missing_artifact_prints_placeholder():
    html = PrintAdapter().wrap(None)
    assert "Label could not be loaded" in html
    assert 'class="placeholder">' in html
    assert "window.onload = printAndClose" in html


def test_raster_artifact_embedded_as_data_uri():
    artifact = LabelArtifact(b"\x89PNGfake", "image/png", "png")
    html = PrintAdapter().wrap(artifact)
    assert 'src="data:image/png;base64,' in html


def test_src_label_falls_back_on_error():
    html = PrintAdapter().wrap(src="/api/label?id=abc&name=Tips")
    assert 'src="/api/label?id=abc&amp;name=Tips"' in html
    assert 'onerror="showPlaceholder(); printAndClose()"' in html
    # printing waits for the image instead of window load
    assert "window.onload" not in html
