from __future__ import annotations

import json
from typing import Any, Self, cast
import urllib.error
import urllib.request

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class PaymentGatewayClientError(Exception):
    """Base error for payment function client failures."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class GatewayBaseModel(BaseModel):
    """Shared base for payment function models with a short parse alias."""

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def parse(cls, data: Any) -> Self:
        return cls.model_validate(data)


class CreatePaymentRequest(GatewayBaseModel):
    """Body of the ``create-payment`` function call.

    ``amount`` is in pesos; the function converts to centavos itself.
    """

    amount: float
    payment_method: str = Field(alias="paymentMethod")
    order_id: str = Field(alias="orderId")
    description: str
    redirect_url: str = Field(alias="redirectUrl")
    bank_code: str | None = Field(default=None, alias="bankCode")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CreatePaymentResponse(GatewayBaseModel):
    success: bool = False
    checkout_url: str | None = Field(default=None, alias="checkoutUrl")
    client_key: str | None = Field(default=None, alias="clientKey")
    payment_id: str | None = Field(default=None, alias="paymentId")
    type: str | None = None
    error: str | None = None


class PaymentGatewayClient:
    """Minimal client for the serverless ``create-payment`` function."""

    def __init__(
        self,
        *,
        function_url: str,
        access_token: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._function_url = function_url
        self._access_token = access_token
        self._timeout_seconds = timeout_seconds

    def _parse_json_response(self, body: str) -> dict[str, Any]:
        """Parse JSON response from the payment function.

        Raises:
            PaymentGatewayClientError: If JSON parsing fails
        """
        try:
            return cast(dict[str, Any], json.loads(body))
        except json.JSONDecodeError as e:
            raise PaymentGatewayClientError(
                f"Failed to parse payment response as JSON: {e}: {body}"
            ) from e

    def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        req = urllib.request.Request(  # noqa: S310
            self._function_url,
            data=data,
            headers=headers,
            method="POST",
        )

        try:
            with urllib.request.urlopen(  # noqa: S310 - external HTTPS
                req, timeout=self._timeout_seconds
            ) as resp:
                body = resp.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            err_body = e.read().decode("utf-8", "ignore")
            raise PaymentGatewayClientError(
                _error_detail(err_body) or f"Payment function error ({e.code})",
                status_code=e.code,
            ) from e
        except urllib.error.URLError as e:
            raise PaymentGatewayClientError(
                f"Network error calling payment function: {e}"
            ) from e

        return self._parse_json_response(body)

    def create_payment(self, request: CreatePaymentRequest) -> CreatePaymentResponse:
        """Start a payment and return the function's answer.

        Raises:
            PaymentGatewayClientError: On transport failure or a reply that does
                not match ``CreatePaymentResponse``
        """
        data = self._post(request.to_payload())
        try:
            return CreatePaymentResponse.parse(data)
        except ValidationError as e:
            raise PaymentGatewayClientError(
                f"Unexpected payment response: {data!r}"
            ) from e


def _error_detail(body: str) -> str | None:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body or None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return body or None
