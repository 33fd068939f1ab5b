"""
Callback Views
--------------
Endpoint the conversion workflow calls when a job finishes.

Endpoints:
    - POST /v1/callbacks/workflow: Report success (resultRef or csvContent) or failure (error)

Headers:
    - X-Callback-Secret: shared secret, must match CALLBACK_SECRET
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Header, Request
from pydantic import ValidationError as PydanticValidationError
from starlette import status as H

from contracts.job_schemas import CallbackRequest
from support.constants import APP_NAME
from support.exceptions import UnauthorizedError, ValidationError
from support.security import verify_callback_secret


logger = logging.getLogger(APP_NAME)


class CallbackViewsManager:
    """
    Registers the workflow callback endpoint on the provided router.
    """

    def __init__(self, router: APIRouter):
        self.router = router
        self.register_views()

    @staticmethod
    def parse_callback(body: Any) -> CallbackRequest:
        if not isinstance(body, dict):
            raise ValidationError("Callback body must be a JSON object", code="INVALID_CALLBACK_PAYLOAD")
        try:
            return CallbackRequest.model_validate(body)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            raise ValidationError(
                first.get("msg", "Invalid callback payload"), code="INVALID_CALLBACK_PAYLOAD"
            ) from e

    def register_views(self) -> None:
        # POST @ http://127.0.0.1:8000/v1/callbacks/workflow
        @self.router.post(
            "/callbacks/workflow", status_code=H.HTTP_200_OK, summary="Workflow completion callback (v1)"
        )
        async def workflow_callback(
            request: Request,
            x_callback_secret: Optional[str] = Header(None),
        ) -> Dict[str, Any]:
            """
            Applies the workflow's outcome to the job. Replays are acknowledged
            with ``applied: false`` and leave the job untouched.
            """
            # Reject forged callbacks before even reading the body
            if not verify_callback_secret(x_callback_secret):
                logger.warning("Rejected workflow callback: invalid callback secret")
                raise UnauthorizedError("Invalid callback secret", code="INVALID_CALLBACK_SECRET")

            try:
                body = await request.json()
            except ValueError as e:
                raise ValidationError("Callback body is not valid JSON", code="INVALID_CALLBACK_PAYLOAD") from e

            outcome = self.parse_callback(body)
            receiver = request.app.state.callback_receiver
            result = await receiver.on_callback(outcome.job_id, outcome, x_callback_secret)
            return result.to_public()
