import threading

import pytest

from lab_inventory.app import create_app
from lab_inventory.config import Config
from lab_inventory.errors import TransportFailure
from lab_inventory.labels import LabelSynthesizer, QrRenderer
from lab_inventory.models import Item, db
from lab_inventory.notify import DispatchResult


class FakeDispatcher:
    """Records dispatches; can be told to fail or to block until released."""

    def __init__(self, fail=False, gate=None):
        self.calls = []
        self.fail = fail
        self.gate = gate
        self.entered = threading.Event()

    def dispatch(self, item_id, item_name=None, note=None, link=None, purchase_link=None):
        self.calls.append({"item_id": item_id, "item_name": item_name, "note": note,
                           "link": link, "purchase_link": purchase_link})
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            raise TransportFailure("smtp said no")
        return DispatchResult(accepted=["manager@lab.test"], transport_id="<msg-1@lab-inventory>")


class RecordingRenderer(QrRenderer):
    def __init__(self):
        super().__init__()
        self.payloads = []

    def matrix(self, payload):
        self.payloads.append(payload)
        return super().matrix(payload)


def make_config(**overrides):
    values = dict(secret_key="test", database_url="sqlite:///:memory:")
    values.update(overrides)
    return Config(**values)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def app(dispatcher, renderer):
    app = create_app(make_config(), dispatcher=dispatcher,
                     synthesizer=LabelSynthesizer(renderer))
    app.config["TESTING"] = True
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def pipette_tips(app):
    with app.app_context():
        db.session.add(Item(id="abc123", name="Pipette Tips", kind="consumable",
                            quantity=2, min_quantity=5))
        db.session.commit()
    return "abc123"


@pytest.fixture
def pipette_tips_app_failing():
    dispatcher = FakeDispatcher(fail=True)
    app = create_app(make_config(), dispatcher=dispatcher)
    with app.app_context():
        db.session.add(Item(id="abc123", name="Pipette Tips", kind="consumable",
                            quantity=2, min_quantity=5))
        db.session.commit()
    yield app.test_client(), dispatcher
    with app.app_context():
        db.session.remove()
        db.drop_all()
