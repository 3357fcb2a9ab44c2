import base64
from typing import Optional

from jinja2 import Environment, select_autoescape
from markupsafe import Markup

from .labels import LabelArtifact, SVG_MIMETYPE

_env = Environment(autoescape=select_autoescape(default=True, default_for_string=True))

PRINT_TEMPLATE = _env.from_string("""<!doctype html>
<html><head><meta charset="utf-8"><title>{{ title }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<style>
  @page { margin: 10mm; }
  html,body { height: 100%; }
  body { margin: 0; display: flex; align-items: center; justify-content: center;
         font-family: ui-sans-serif, system-ui, Segoe UI, Roboto, Arial; }
  .label img { width: 340px; height: 360px; }
  .placeholder { border: 2px dashed #b91c1c; color: #b91c1c; padding: 24px;
                 font-weight: 600; text-align: center; }
  .placeholder[hidden] { display: none; }
</style>
</head>
<body>
<div class="label">
{%- if svg %}
{{ svg }}
{%- elif data_uri %}
<img src="{{ data_uri }}" alt="{{ title }}">
{%- elif src %}
<img id="label-img" src="{{ src }}" alt="{{ title }}"
     onload="printAndClose()" onerror="showPlaceholder(); printAndClose()">
{%- endif %}
<div id="label-error" class="placeholder"{% if has_artifact %} hidden{% endif %}>{{ error_text }}</div>
</div>
<script>
  var printed = false;
  function showPlaceholder() {
    var img = document.getElementById("label-img");
    if (img) { img.remove(); }
    document.getElementById("label-error").hidden = false;
  }
  function printAndClose() {
    if (printed) { return; }
    printed = true;
    window.print();
    window.close();
  }
  {%- if not src or not has_artifact %}
  window.onload = printAndClose;
  {%- endif %}
</script>
</body></html>
""")


class PrintAdapter:
    """
    Wraps a label in a throwaway HTML page that opens the print dialog and
    closes itself. The page is meant to be opened in its own window.
    """

    error_text = "Label could not be loaded"

    def wrap(self, artifact: Optional[LabelArtifact] = None, src: Optional[str] = None,
             title: str = "Print Label") -> str:
        svg = data_uri = None
        if artifact is not None:
            if artifact.mimetype == SVG_MIMETYPE:
                svg = Markup(artifact.content.decode("utf-8"))
            else:
                encoded = base64.b64encode(artifact.content).decode("ascii")
                data_uri = f"data:{artifact.mimetype};base64,{encoded}"
            src = None

        return PRINT_TEMPLATE.render(
            title=title,
            svg=svg,
            data_uri=data_uri,
            src=src,
            has_artifact=bool(svg or data_uri or src),
            error_text=self.error_text,
        )
