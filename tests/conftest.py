import pytest

import webhook

from models import AdmissionRequest, PolicyConfig


@pytest.fixture()
def app():
    app = webhook.create_app(TESTING=True)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def policy():
    return PolicyConfig(
        required_name="dallas-demo",
        prod_annotation="tunde.meetup.com/prod",
        label_name="env",
        label_value="prod",
    )


@pytest.fixture()
def make_request():
    def _make_request(obj, uid="1234"):
        return AdmissionRequest(uid=uid, object=obj)

    return _make_request
