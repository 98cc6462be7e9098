import json
import logging

from pydantic_core import PydanticSerializationError

from models import AdmissionResponse, AdmissionReview, ApiVersion, Status
from exc import EncodeError

LOG = logging.getLogger(__name__)


class EnvelopeCodec:
    """Reads and writes AdmissionReview envelopes.

    One instance is created with the application and shared by every request;
    it holds no per-request state.
    """

    def __init__(self, default_api_version: ApiVersion = ApiVersion.V1):
        self._default_api_version = default_api_version

    @property
    def default_api_version(self) -> ApiVersion:
        return self._default_api_version

    def decode(self, body: bytes) -> AdmissionReview:
        """Parse a request body. Raises pydantic.ValidationError on bad input."""
        return AdmissionReview.model_validate_json(body)

    def encode(self, review: AdmissionReview) -> bytes:
        try:
            return review.model_dump_json(exclude_none=True).encode()
        except (PydanticSerializationError, ValueError, TypeError) as err:
            LOG.error("can't encode response: %s", err)
            raise EncodeError(f"could not encode response: {err}")

    def salvage_uid(self, body: bytes) -> str:
        """Pull request.uid out of a body that did not validate, if possible."""
        try:
            data = json.loads(body)
        except (ValueError, RecursionError):
            return ""

        if not isinstance(data, dict):
            return ""

        req = data.get("request")
        if not isinstance(req, dict):
            return ""

        uid = req.get("uid")
        return uid if isinstance(uid, str) else ""

    def respond(
        self,
        response: AdmissionResponse,
        api_version: ApiVersion | None = None,
    ) -> AdmissionReview:
        return AdmissionReview(
            apiVersion=api_version or self._default_api_version,
            response=response,
        )

    def failure(
        self,
        body: bytes,
        message: str,
        api_version: ApiVersion | None = None,
    ) -> AdmissionReview:
        """Build the envelope returned when a request cannot be decided."""
        return self.respond(
            AdmissionResponse(
                uid=self.salvage_uid(body),
                allowed=False,
                status=Status(message=message),
            ),
            api_version,
        )
