from collections.abc import Mapping
from typing import Optional

from flask import (
    Blueprint, Flask, Response, current_app, flash, jsonify, redirect,
    render_template, request, url_for
)

from .base_url import require_base_url, resolve_base_url
from .config import Config
from .errors import (
    LoadFailure, MissingInput, NotConfigured, ResolutionFailure, TransportFailure
)
from .labels import FORMATS, LabelSynthesizer
from .logger import get_logger, setup_logging
from .models import add_note, create_item, db, get_item, list_items
from .notify import build_dispatcher
from .payload import encode_payload, item_path, notify_requested, scan_target
from .printing import PrintAdapter
from .scan import ActivationRegistry, ScanActivation, ScanState
from .status import ITEM_KINDS, parse_status

logger = get_logger(__name__)

LABEL_CACHE = "public, max-age=31536000, immutable"
QR_CACHE = "public, max-age=3600"
SCAN_NOTE = "Auto-notify via QR scan"

bp = Blueprint("inventory", __name__)


# ---------- Helpers ----------
def _config() -> Config:
    return current_app.config["LAB_CONFIG"]


def _base_url() -> str:
    return require_base_url(request.headers, _config().base_url)


def _dispatcher():
    dispatcher = current_app.extensions.get("notify_dispatcher")
    if dispatcher is None:
        dispatcher = build_dispatcher(_config())
    return dispatcher


def _item_link(item_id: str) -> Optional[str]:
    base = resolve_base_url(request.headers, _config().base_url)
    return encode_payload(base, item_id) if base else None


def _label_urls(item):
    status = item.stock_status()
    params = {"id": item.id, "name": item.name}
    if status is not None:
        params["status"] = status.value.lower()
    return (
        url_for("inventory.api_label", **params),
        url_for("inventory.item_print", item_id=item.id),
    )


# ---------- Error handlers ----------
@bp.app_errorhandler(MissingInput)
def handle_missing_input(e):
    return Response(str(e) or "Missing input", status=400, mimetype="text/plain")


@bp.app_errorhandler(ResolutionFailure)
def handle_resolution_failure(e):
    return Response("Cannot determine base URL", status=400, mimetype="text/plain")


# ---------- Views ----------
@bp.get("/")
def index():
    return redirect(url_for("inventory.items_list"))


@bp.get("/items")
def items_list():
    return render_template("items_list.html", items=list_items(), title="Inventory")


@bp.get("/items/new")
def item_new():
    created = None
    label_src = print_url = None
    created_id = (request.args.get("created") or "").strip()
    if created_id:
        created = get_item(created_id)
        if created is not None:
            label_src, print_url = _label_urls(created)
    return render_template("item_form.html",
                           kinds=ITEM_KINDS,
                           created=created,
                           label_src=label_src,
                           print_url=print_url,
                           title="Add Item")


@bp.post("/items/new")
def item_create():
    form = request.form
    try:
        item = create_item(
            name=form.get("name", ""),
            kind=form.get("kind", "consumable"),
            location=form.get("location"),
            quantity=form.get("quantity"),
            min_quantity=form.get("min_quantity"),
            purchase_link=form.get("purchase_link"),
            notes=form.get("notes"),
        )
    except (MissingInput, ValueError) as e:
        flash(str(e), "error")
        return redirect(url_for("inventory.item_new"))

    flash("Item created.", "success")
    return redirect(url_for("inventory.item_new", created=item.id))


@bp.get("/item/<item_id>")
def item_view(item_id):
    notify = notify_requested(request.args.get("notify"))

    if notify:
        token = (request.args.get("activation") or "").strip()
        if not token:
            registry = current_app.extensions["scan_activations"]
            return redirect(url_for("inventory.item_view", item_id=item_id,
                                    notify=1, activation=registry.new_token()))
        activation = _notify_activation(item_id, token)
    else:
        activation = ScanActivation(item_id, False, get_item, None)

    view = activation.run()
    if view.state == ScanState.LOAD_FAILED:
        return render_template("item_missing.html", item_id=item_id, title="Not found"), 404

    if view.notify:
        return render_template("scan_confirm.html", item=view.item,
                               indicator=view.indicator, title="Thanks!")

    label_src, print_url = _label_urls(view.item)
    return render_template("item.html", item=view.item, status=view.item.stock_status(),
                           label_src=label_src, print_url=print_url, title=view.item.name)


def _notify_activation(item_id: str, token: str) -> ScanActivation:
    registry = current_app.extensions["scan_activations"]

    def send(item):
        return _dispatcher().dispatch(item.id, item.name, SCAN_NOTE,
                                      _item_link(item.id), item.purchase_link)

    # Keyed by item too: a token pasted onto another item's URL gets its own guard.
    return registry.get_or_create(
        (token, item_id), lambda: ScanActivation(item_id, True, get_item, send)
    )


@bp.get("/item/<item_id>/print")
def item_print(item_id):
    item = get_item(item_id)
    if item is None:
        return render_template("item_missing.html", item_id=item_id, title="Not found"), 404
    label_src, _ = _label_urls(item)
    # The window loads the label itself so a failed fetch shows the placeholder
    html = PrintAdapter().wrap(src=label_src, title=f"Print Label - {item.name}")
    resp = Response(html, mimetype="text/html")
    resp.headers["Cache-Control"] = "no-store"
    return resp


@bp.post("/item/<item_id>/notes")
def item_add_note(item_id):
    try:
        add_note(item_id, request.form.get("body", ""), request.form.get("author"))
    except MissingInput as e:
        flash(str(e), "error")
    except LoadFailure:
        return render_template("item_missing.html", item_id=item_id, title="Not found"), 404
    else:
        flash("Note added.", "success")
    return redirect(url_for("inventory.item_view", item_id=item_id))


@bp.route("/scan", methods=["GET", "POST"])
def scan():
    if request.method == "POST":
        try:
            return redirect(scan_target(request.form.get("code", "")))
        except MissingInput as e:
            flash(str(e), "error")
    return render_template("scan.html", title="Scan")


# ---------- API ----------
def _format_arg() -> str:
    fmt = (request.args.get("format") or "svg").strip().lower()
    if fmt not in FORMATS:
        raise MissingInput(f"Unsupported format: {fmt}")
    return fmt


@bp.get("/api/label")
def api_label():
    item_id = (request.args.get("id") or "").strip()
    if not item_id:
        raise MissingInput("Missing id")
    name = request.args.get("name") or ""
    status = parse_status(request.args.get("status"))
    fmt = _format_arg()

    payload = encode_payload(_base_url(), item_id, notify=True)
    synth: LabelSynthesizer = current_app.extensions["label_synthesizer"]
    artifact = synth.synthesize(payload, name, status, fmt=fmt, caption=item_id)

    if request.args.get("print") == "1":
        title = f"Print Label - {name}" if name else "Print Label"
        html = PrintAdapter().wrap(artifact, title=title)
        resp = Response(html, mimetype="text/html")
        resp.headers["Cache-Control"] = "no-store"
        return resp

    resp = Response(artifact.content, mimetype=artifact.mimetype)
    resp.headers["Cache-Control"] = LABEL_CACHE
    return resp


@bp.get("/api/qr")
def api_qr():
    url = (request.args.get("url") or "").strip()
    item_id = (request.args.get("id") or "").strip()
    if url:
        payload = url
    elif item_id:
        payload = encode_payload(_base_url(), item_id)
    else:
        raise MissingInput("Missing id or url")

    synth: LabelSynthesizer = current_app.extensions["label_synthesizer"]
    artifact = synth.barcode(payload, fmt=_format_arg())
    resp = Response(artifact.content, mimetype=artifact.mimetype)
    # Short lifetime so a new domain or BASE_URL propagates quickly
    resp.headers["Cache-Control"] = QR_CACHE
    return resp


def _field(data: Mapping, *keys) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return str(value).strip()
    return ""


@bp.post("/api/notify")
def api_notify():
    data = request.get_json(silent=True)
    if data is None:
        data = request.form
    if not isinstance(data, Mapping):
        return jsonify(ok=False, error="Missing item_id"), 400

    item_id = _field(data, "item_id", "itemId")
    item_name = _field(data, "item_name", "itemName") or None
    note = _field(data, "note", "message") or None
    purchase_link = _field(data, "purchase_link", "buyLink") or None
    if not item_id:
        return jsonify(ok=False, error="Missing item_id"), 400

    try:
        result = _dispatcher().dispatch(item_id, item_name, note,
                                        _item_link(item_id), purchase_link)
    except NotConfigured as e:
        logger.error("Notification requested but transport not configured: %s", e)
        return jsonify(ok=False, error="Notifications not configured"), 503
    except TransportFailure:
        return jsonify(ok=False, error="Failed to send notification"), 502
    return jsonify(ok=True, **result.as_dict())


@bp.get("/health")
def health():
    return jsonify(ok=True)


# ---------- App ----------
def create_app(config: Optional[Config] = None, dispatcher=None,
               synthesizer: Optional[LabelSynthesizer] = None) -> Flask:
    config = config or Config.from_env()
    setup_logging(config)
    app = Flask(__name__)
    app.config.update(config.flask_settings())
    app.config["LAB_CONFIG"] = config

    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.extensions["scan_activations"] = ActivationRegistry()
    app.extensions["notify_dispatcher"] = dispatcher
    app.extensions["label_synthesizer"] = synthesizer or LabelSynthesizer()

    @app.context_processor
    def inject_helpers():
        return {"item_path": item_path}

    app.register_blueprint(bp)
    logger.info("Lab inventory app ready (notify transport: %s)", config.notify_transport)
    return app


if __name__ == "__main__":
    create_app().run(host="127.0.0.1", port=5050, debug=True)
