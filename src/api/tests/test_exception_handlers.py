import orjson
from django.core.exceptions import ValidationError
from django.test import RequestFactory

from api.exception_handlers import (
    handle_django_validation_error,
    handle_general_exception,
    handle_ticketing_error,
    obfuscate,
)
from events.exceptions import OutOfStockError, PaymentRequiredError


def test_handle_ticketing_error() -> None:
    request = RequestFactory().post("/api/tickets/claim")

    response = handle_ticketing_error(request, OutOfStockError(remaining=0, quantity=2))

    assert response.status_code == 409
    assert orjson.loads(response.content) == {"code": "out_of_stock", "detail": "Not enough tickets available."}


def test_handle_ticketing_error_custom_message() -> None:
    request = RequestFactory().post("/api/tickets/claim")

    response = handle_ticketing_error(request, PaymentRequiredError("Pay at the door.", price="5.00"))

    assert response.status_code == 402
    assert orjson.loads(response.content)["detail"] == "Pay at the door."


def test_handle_django_validation_error_with_fields() -> None:
    request = RequestFactory().post("/api/tickets/claim")

    response = handle_django_validation_error(request, ValidationError({"quantity": ["Too many."]}))

    assert response.status_code == 400
    assert orjson.loads(response.content) == {"errors": {"quantity": ["Too many."]}}


def test_handle_django_validation_error_without_fields() -> None:
    request = RequestFactory().post("/api/tickets/claim")

    response = handle_django_validation_error(request, ValidationError("Nope."))

    assert orjson.loads(response.content) == {"errors": {"__all__": ["Nope."]}}


def test_handle_general_exception() -> None:
    request = RequestFactory().get("/api/tickets/verify", {"code": "secret"}, HTTP_AUTHORIZATION="Bearer abc")

    try:
        raise RuntimeError("kaboom")
    except RuntimeError as e:
        response = handle_general_exception(request, e)

    assert response.status_code == 500
    assert orjson.loads(response.content)["detail"] == "Internal Server Error."


def test_obfuscate() -> None:
    data = {"Authorization": "Bearer abc", "Stripe-Signature": "t=1,v1=x", "Accept": "application/json"}

    assert obfuscate(data) == {
        "Authorization": "********",
        "Stripe-Signature": "********",
        "Accept": "application/json",
    }
