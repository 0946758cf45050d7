"""
Gong Notifier - Plugin Requests API
===================================

Inbound adapter for the CI host's notification-plugin requests.
The host posts each request to /plugin/{request_name} with the request
body as JSON.

Supported requests:
- go.plugin-settings.get-configuration: settings fields
- go.plugin-settings.get-view: settings form template
- go.plugin-settings.validate-configuration: settings validation
- notifications-interested-in: notification types we handle
- stage-status: one stage state change
"""

from typing import Any

import structlog
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from gong_notifier.api.deps import Dispatcher
from gong_notifier.core.schemas import PLUGIN_SETTINGS_FIELDS, PluginResponse, StageStateChange
from gong_notifier.core.notifier.settings_source import validate_plugin_settings

logger = structlog.get_logger()

router = APIRouter(prefix="/plugin", tags=["Plugin"])


PLUGIN_SETTINGS_GET_CONFIGURATION = "go.plugin-settings.get-configuration"
PLUGIN_SETTINGS_GET_VIEW = "go.plugin-settings.get-view"
PLUGIN_SETTINGS_VALIDATE_CONFIGURATION = "go.plugin-settings.validate-configuration"
REQUEST_NOTIFICATIONS_INTERESTED_IN = "notifications-interested-in"
REQUEST_STAGE_STATUS = "stage-status"

# Served as-is; the host renders it
SETTINGS_TEMPLATE = """\
<div class="form_item_block">
  <label>GoCD server URL:<span class="asterix">*</span></label>
  <input type="text" ng-model="server_url" ng-required="true"/>
  <label>REST API user:</label>
  <input type="text" ng-model="rest_user"/>
  <label>REST API password:</label>
  <input type="password" ng-model="rest_password"/>
  <label>SMTP host:<span class="asterix">*</span></label>
  <input type="text" ng-model="smtp_host" ng-required="true"/>
  <label>SMTP port:<span class="asterix">*</span></label>
  <input type="text" ng-model="smtp_port" ng-required="true"/>
  <label>Sender address:<span class="asterix">*</span></label>
  <input type="text" ng-model="sender_email" ng-required="true"/>
  <label>Always notify (comma separated):</label>
  <input type="text" ng-model="fallback_recipients"/>
</div>
"""


def failure(status_code: int, *messages: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=PluginResponse(status="failure", messages=list(messages)).model_dump(),
    )


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        return None
    return await request.json()


# ==========================================================================
# Settings
# ==========================================================================

async def handle_get_configuration() -> dict:
    return PLUGIN_SETTINGS_FIELDS


async def handle_get_view() -> dict:
    return {"template": SETTINGS_TEMPLATE}


async def handle_validate_configuration(body: Any) -> list[dict]:
    return [error.model_dump() for error in validate_plugin_settings(body or {})]


async def handle_notifications_interested_in() -> dict:
    return {"notifications": [REQUEST_STAGE_STATUS]}


# ==========================================================================
# Stage Status
# ==========================================================================

async def handle_stage_status(body: Any, dispatcher: Dispatcher) -> JSONResponse:
    """Decode the event, dispatch it, answer with the host envelope."""
    try:
        event = StageStateChange.model_validate(body)
    except ValidationError as e:
        logger.warning("stage_status_invalid", errors=e.error_count())
        return failure(status.HTTP_400_BAD_REQUEST, f"Invalid stage-status body: {e.error_count()} error(s)")

    result = await dispatcher.dispatch(event)
    response = result.to_response()
    return JSONResponse(
        status_code=status.HTTP_200_OK if result.ok else status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=response.model_dump(),
    )


@router.post(
    "/{request_name}",
    summary="Handle a plugin request from the CI host",
    responses={
        200: {"description": "Request handled"},
        400: {"description": "Malformed request body"},
        500: {"description": "Request failed or is not supported"},
    },
)
async def handle_plugin_request(request_name: str, request: Request, dispatcher: Dispatcher):
    """
    Route a host request by name.

    Unknown request names get a failure envelope with HTTP 500, which the
    host treats as "not supported".
    """
    try:
        body = await _json_body(request)
    except ValueError:
        return failure(status.HTTP_400_BAD_REQUEST, "Request body is not valid JSON")

    if request_name == PLUGIN_SETTINGS_GET_CONFIGURATION:
        return await handle_get_configuration()
    if request_name == PLUGIN_SETTINGS_GET_VIEW:
        return await handle_get_view()
    if request_name == PLUGIN_SETTINGS_VALIDATE_CONFIGURATION:
        return await handle_validate_configuration(body)
    if request_name == REQUEST_NOTIFICATIONS_INTERESTED_IN:
        return await handle_notifications_interested_in()
    if request_name == REQUEST_STAGE_STATUS:
        return await handle_stage_status(body, dispatcher)

    logger.warning("plugin_request_unhandled", request_name=request_name)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Unhandled request: {request_name}")
