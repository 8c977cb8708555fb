"""
Deal Desk — JSON-RPC Tool Server
==================================

Line-delimited JSON-RPC 2.0 over stdin/stdout. Each request line is
dispatched to a PipelineService operation and answered with exactly one
response line; notifications (no id) are executed silently.

Methods:
    initialize      server info, protocol version, capabilities
    tools/list      advertised tool definitions
    tools/call      {name, arguments} -> {"content": [{"type": "text", "text": "<json>"}]}
    shutdown        acknowledge and stop reading
    <tool name>     any tool called directly, result returned as JSON

Usage:
    python main.py serve --data data/deals.csv
"""
from __future__ import annotations

import json
import sys
from datetime import date
from typing import Any, Callable, Dict, List, Optional, TextIO

from pydantic import BaseModel, ValidationError

from models.deal_models import DealFilter, DealStage, PromoterIdentity, PromoterTier
from models.rpc_models import (
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    RpcErrorCode,
    ToolDefinition,
)
from scripts.lib.errors import (
    DealDeskError,
    DealNotFoundError,
    InvalidParamsError,
    UnknownMethodError,
)
from scripts.lib.logger import setup_logger
from scripts.pipeline.normalizer import parse_date
from scripts.pipeline.service import PipelineService

logger = setup_logger(__name__)

SERVER_NAME = "deal-desk"
SERVER_VERSION = "1.0.0"
PROTOCOL_VERSION = "2024-11-05"

_STAGE_NAMES = [stage.value for stage in DealStage]


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

def _prop(kind: str, description: str, **extra) -> Dict[str, Any]:
    return {"type": kind, "description": description, **extra}


def _schema(properties: Dict[str, Any] = None, required: List[str] = None) -> Dict[str, Any]:
    schema = {"type": "object", "properties": properties or {}}
    if required:
        schema["required"] = required
    return schema


_REFERENCE_DATE = {"referenceDate": _prop("string", "Reference date (ISO format, default today)")}

_PROMOTER_ARGS = {
    "promoterId": _prop("string", "Promoter ID"),
    "promoCode": _prop("string", "Promo code attributed on deals"),
    "promoterName": _prop("string", "Display name for the dashboard"),
    "tier": _prop("string", "Promoter tier", enum=[t.value for t in PromoterTier]),
    **_REFERENCE_DATE,
}

TOOL_DEFINITIONS: List[ToolDefinition] = [
    ToolDefinition(
        name="pipeline.list_deals",
        description="List deals in the pipeline, optionally filtered",
        input_schema=_schema({
            "searchText": _prop("string", "Free-text search across deal name, account, contact, deal id and owner"),
            "stages": _prop("array", "Filter by stages", items={"type": "string", "enum": _STAGE_NAMES}),
            "owner": _prop("string", "Filter by deal owner"),
            "region": _prop("string", "Filter by region"),
            "productLine": _prop("string", "Filter by product line"),
            "minAmount": _prop("number", "Minimum deal amount"),
            "maxAmount": _prop("number", "Maximum deal amount"),
            "closeDateFrom": _prop("string", "Close date on or after (ISO)"),
            "closeDateTo": _prop("string", "Close date on or before (ISO)"),
            "hasOverdueNextStep": _prop("boolean", "Only open deals with an overdue next step"),
            "noContactDays": _prop("integer", "No contact for at least this many days"),
            "tags": _prop("array", "Must carry all of these tags", items={"type": "string"}),
            "promoterId": _prop("string", "Filter by promoter ID"),
            "promoCode": _prop("string", "Filter by promo code"),
            "hasPromoter": _prop("boolean", "Only deals with (or without) a promoter"),
            "limit": _prop("integer", "Maximum deals to return"),
            **_REFERENCE_DATE,
        }),
    ),
    ToolDefinition(
        name="pipeline.get_deal",
        description="Get a single deal by its ID",
        input_schema=_schema({"dealId": _prop("string", "The deal ID")}, ["dealId"]),
    ),
    ToolDefinition(
        name="pipeline.upsert_deal",
        description="Create or update a deal; derived fields are filled in",
        input_schema=_schema({
            "dealId": _prop("string", "Deal ID (generated if not provided)"),
            "accountName": _prop("string", "Account/company name"),
            "dealName": _prop("string", "Name of the opportunity"),
            "contactName": _prop("string", "Primary contact name"),
            "email": _prop("string", "Contact email"),
            "phone": _prop("string", "Contact phone"),
            "postcode": _prop("string", "UK postcode"),
            "stage": _prop("string", "Deal stage", enum=_STAGE_NAMES),
            "probability": _prop("integer", "Win probability (0-100)"),
            "amountGBP": _prop("number", "Deal value in GBP"),
            "owner": _prop("string", "Deal owner"),
            "nextStep": _prop("string", "Next action"),
            "nextStepDueDate": _prop("string", "Due date for the next step (ISO)"),
            "closeDate": _prop("string", "Expected close date (ISO)"),
            "productLine": _prop("string", "Product line"),
            "leadSource": _prop("string", "Lead source"),
            "comments": _prop("string", "Notes"),
            "tags": _prop("array", "Tags", items={"type": "string"}),
        }, ["accountName", "dealName"]),
    ),
    ToolDefinition(
        name="pipeline.patch_deal",
        description="Update specific fields of an existing deal",
        input_schema=_schema({
            "dealId": _prop("string", "The deal ID to update"),
            "updates": _prop("object", "Field name to new value"),
        }, ["dealId", "updates"]),
    ),
    ToolDefinition(
        name="pipeline.delete_deal",
        description="Delete a deal from the pipeline",
        input_schema=_schema({"dealId": _prop("string", "The deal ID to delete")}, ["dealId"]),
    ),
    ToolDefinition(
        name="pipeline.hygiene_report",
        description="Data-quality issues across open deals",
        input_schema=_schema(dict(_REFERENCE_DATE)),
    ),
    ToolDefinition(
        name="pipeline.daily_brief",
        description="Deals due today, overdue, gone quiet, and high-value at risk",
        input_schema=_schema(dict(_REFERENCE_DATE)),
    ),
    ToolDefinition(
        name="pipeline.forecast_snapshot",
        description="Pipeline totals by stage, owner, close month, region and product",
        input_schema=_schema(dict(_REFERENCE_DATE)),
    ),
    ToolDefinition(
        name="pipeline.generate_synthetic",
        description="Replace the pipeline with generated demo deals",
        input_schema=_schema({
            "count": _prop("integer", "Number of deals (default 100)"),
            "seed": _prop("integer", "Random seed for reproducible output"),
        }),
    ),
    ToolDefinition(
        name="pipeline.get_stats",
        description="Summary counts and totals for the pipeline",
    ),
    ToolDefinition(
        name="pipeline.save",
        description="Write the pipeline to the sheet",
    ),
    ToolDefinition(
        name="pipeline.reload",
        description="Discard in-memory changes and re-read the sheet",
    ),
    ToolDefinition(
        name="pipeline.restore_backup",
        description="Roll the sheet back to its newest backup and reload it",
    ),
    ToolDefinition(
        name="promoter.dashboard",
        description="Referral partner dashboard: summary, stages, actions and commission",
        input_schema=_schema(dict(_PROMOTER_ARGS)),
    ),
    ToolDefinition(
        name="promoter.deals",
        description="Deals attributed to a promoter with health status",
        input_schema=_schema(dict(_PROMOTER_ARGS)),
    ),
    ToolDefinition(
        name="promoter.actions",
        description="Recommended actions for a promoter's deals",
        input_schema=_schema(dict(_PROMOTER_ARGS)),
    ),
]


# ---------------------------------------------------------------------------
# Serialization and argument helpers
# ---------------------------------------------------------------------------

def to_jsonable(value: Any) -> Any:
    """Convert service results into JSON-ready camelCase structures."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: to_jsonable(v) for k, v in value.items()}
    return value


def _string_arg(args: Dict[str, Any], name: str, required: bool = False) -> Optional[str]:
    value = args.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidParamsError(f"{name} is required", param=name)
        return None
    if not isinstance(value, str):
        raise InvalidParamsError(f"{name} must be a string", param=name)
    return value.strip()


def _int_arg(args: Dict[str, Any], name: str, default: Optional[int] = None,
             minimum: Optional[int] = None) -> Optional[int]:
    value = args.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParamsError(f"{name} must be an integer", param=name)
    if minimum is not None and value < minimum:
        raise InvalidParamsError(f"{name} must be at least {minimum}", param=name)
    return value


def _date_arg(args: Dict[str, Any], name: str = "referenceDate") -> Optional[date]:
    value = args.get(name)
    if value is None or value == "":
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise InvalidParamsError(f"{name} is not a valid date: {value!r}", param=name)
    return parsed


def _promoter_args(args: Dict[str, Any]):
    promoter_id = _string_arg(args, "promoterId")
    promo_code = _string_arg(args, "promoCode")
    if not promoter_id and not promo_code:
        raise InvalidParamsError("promoterId or promoCode is required", param="promoterId")
    try:
        tier = PromoterTier.parse(args.get("tier") or PromoterTier.BRONZE.value)
    except ValueError as e:
        raise InvalidParamsError(str(e), param="tier") from e
    identity = PromoterIdentity(
        promoter_id=promoter_id,
        promo_code=promo_code,
        name=_string_arg(args, "promoterName") or promoter_id or promo_code,
    )
    return identity, tier, _date_arg(args)


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------

class ToolServer:
    """Dispatches JSON-RPC requests onto a PipelineService."""

    def __init__(self, service: PipelineService):
        self.service = service
        self.running = False
        self._tools: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "pipeline.list_deals": self._list_deals,
            "pipeline.get_deal": self._get_deal,
            "pipeline.upsert_deal": self._upsert_deal,
            "pipeline.patch_deal": self._patch_deal,
            "pipeline.delete_deal": self._delete_deal,
            "pipeline.hygiene_report": lambda a: self.service.hygiene_report(_date_arg(a)),
            "pipeline.daily_brief": lambda a: self.service.daily_brief(_date_arg(a)),
            "pipeline.forecast_snapshot": lambda a: self.service.forecast_snapshot(_date_arg(a)),
            "pipeline.generate_synthetic": self._generate_synthetic,
            "pipeline.get_stats": lambda a: self.service.stats(),
            "pipeline.save": lambda a: {"success": True, "dealsSaved": self.service.save()},
            "pipeline.reload": lambda a: {"success": True, "dealsLoaded": self.service.reload()},
            "pipeline.restore_backup": self._restore_backup,
            "promoter.dashboard": lambda a: self.service.promoter_dashboard(*_promoter_args(a)),
            "promoter.deals": lambda a: self.service.promoter_deals(*_promoter_args(a)),
            "promoter.actions": lambda a: self.service.promoter_actions(*_promoter_args(a)),
        }
        self._methods: Dict[str, Callable[[Dict[str, Any]], Any]] = {
            "initialize": self._initialize,
            "tools/list": lambda p: {"tools": [t.model_dump(by_alias=True) for t in TOOL_DEFINITIONS]},
            "tools/call": self._call_tool,
            "shutdown": self._shutdown,
        }

    # --- Transport ---

    def serve(self, input_stream: TextIO = None, output_stream: TextIO = None) -> int:
        """Read requests until EOF or shutdown. Returns the number of responses written."""
        input_stream = input_stream or sys.stdin
        output_stream = output_stream or sys.stdout
        self.running = True
        written = 0
        logger.info("Tool server listening on stdin")

        for line in input_stream:
            if not line.strip():
                continue
            response = self.handle_line(line)
            if response is not None:
                output_stream.write(json.dumps(response) + "\n")
                output_stream.flush()
                written += 1
            if not self.running:
                break

        self.running = False
        logger.info("Tool server stopped after %d responses", written)
        return written

    def handle_line(self, line: str) -> Optional[dict]:
        """Handle one raw request line. None means no response is due."""
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            return self._error(None, RpcErrorCode.PARSE_ERROR, f"Parse error: {e.msg}")
        return self.handle_payload(payload)

    def handle_payload(self, payload: Any) -> Optional[dict]:
        if not isinstance(payload, dict):
            return self._error(None, RpcErrorCode.INVALID_REQUEST, "Request must be a JSON object")
        try:
            request = JsonRpcRequest.model_validate(payload)
        except ValidationError as e:
            return self._error(
                payload.get("id") if isinstance(payload.get("id"), (int, str)) else None,
                RpcErrorCode.INVALID_REQUEST, "Invalid request",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            )
        if request.jsonrpc != "2.0":
            return self._error(request.id, RpcErrorCode.INVALID_REQUEST,
                               f"Unsupported jsonrpc version: {request.jsonrpc}")

        response = self.dispatch(request)
        if request.is_notification:
            return None
        return response.to_payload()

    def dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse:
        logger.debug("-> %s (id=%s)", request.method, request.id)
        try:
            result = self._invoke(request.method, request.params)
            return JsonRpcResponse(id=request.id, result=to_jsonable(result))
        except UnknownMethodError as e:
            error = JsonRpcError.build(RpcErrorCode.METHOD_NOT_FOUND, e.message, e.details)
        except InvalidParamsError as e:
            error = JsonRpcError.build(RpcErrorCode.INVALID_PARAMS, e.message, e.details)
        except ValidationError as e:
            error = JsonRpcError.build(
                RpcErrorCode.INVALID_PARAMS, "Invalid params",
                {"errors": e.errors(include_url=False, include_context=False, include_input=False)},
            )
        except DealNotFoundError as e:
            error = JsonRpcError.build(RpcErrorCode.NOT_FOUND, e.message, e.details)
        except DealDeskError as e:
            logger.warning("%s failed: %s", request.method, e)
            error = JsonRpcError.build(
                RpcErrorCode.APPLICATION_ERROR, e.message, {"code": e.code, **e.details},
            )
        except Exception as e:
            logger.error("Unhandled error in %s: %s", request.method, e, exc_info=True)
            error = JsonRpcError.build(RpcErrorCode.INTERNAL_ERROR, f"Internal error: {e}")
        return JsonRpcResponse(id=request.id, error=error)

    def _error(self, request_id, code: RpcErrorCode, message: str, data: dict = None) -> dict:
        logger.debug("Rejected request: %s", message)
        return JsonRpcResponse(
            id=request_id, error=JsonRpcError.build(code, message, data),
        ).to_payload()

    def _invoke(self, method: str, params: Dict[str, Any]) -> Any:
        if method in self._methods:
            return self._methods[method](params)
        return self.call_tool(method, params)

    def call_tool(self, name: str, arguments: Dict[str, Any] = None) -> Any:
        handler = self._tools.get(name)
        if handler is None:
            raise UnknownMethodError(name)
        return handler(arguments or {})

    # --- Protocol methods ---

    def _initialize(self, params: Dict[str, Any]) -> dict:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    def _call_tool(self, params: Dict[str, Any]) -> dict:
        name = _string_arg(params, "name", required=True)
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("arguments must be an object", param="arguments")
        result = to_jsonable(self.call_tool(name, arguments))
        return {"content": [{"type": "text", "text": json.dumps(result)}]}

    def _shutdown(self, params: Dict[str, Any]) -> dict:
        self.running = False
        return {"success": True}

    # --- Tools ---

    def _list_deals(self, args: Dict[str, Any]) -> dict:
        limit = _int_arg(args, "limit", minimum=0)
        reference_date = _date_arg(args)
        criteria = {k: v for k, v in args.items() if k not in ("limit", "referenceDate")}
        deal_filter = DealFilter.model_validate(criteria) if criteria else None
        deals = self.service.list_deals(deal_filter, reference_date)
        total = len(deals)
        if limit is not None:
            deals = deals[:limit]
        return {"deals": deals, "count": len(deals), "total": total}

    def _get_deal(self, args: Dict[str, Any]):
        deal_id = _string_arg(args, "dealId", required=True)
        deal = self.service.get_deal(deal_id)
        if deal is None:
            raise DealNotFoundError(deal_id)
        return deal

    def _upsert_deal(self, args: Dict[str, Any]) -> dict:
        deal, changes = self.service.upsert_deal(args)
        return {"success": True, "deal": deal, "normalizationChanges": changes}

    def _patch_deal(self, args: Dict[str, Any]):
        deal_id = _string_arg(args, "dealId", required=True)
        updates = args.get("updates")
        if not isinstance(updates, dict):
            raise InvalidParamsError("updates must be an object", param="updates")
        result = self.service.patch_deal(deal_id, updates)
        if result is None:
            raise DealNotFoundError(deal_id)
        return result

    def _delete_deal(self, args: Dict[str, Any]) -> dict:
        deal_id = _string_arg(args, "dealId", required=True)
        if not self.service.delete_deal(deal_id):
            raise DealNotFoundError(deal_id)
        return {"success": True, "dealId": deal_id}

    def _generate_synthetic(self, args: Dict[str, Any]) -> dict:
        count = _int_arg(args, "count", default=100, minimum=0)
        seed = _int_arg(args, "seed")
        generated = self.service.generate_synthetic(count, seed)
        return {"success": True, "dealsGenerated": generated, "seed": seed}

    def _restore_backup(self, args: Dict[str, Any]) -> dict:
        restored = self.service.restore_backup()
        return {
            "success": restored is not None,
            "restoredFrom": restored,
            "dealsLoaded": self.service.store.count(),
        }
