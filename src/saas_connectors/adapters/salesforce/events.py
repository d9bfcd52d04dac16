"""
Change Data Capture events and event channel subscriptions.

A single CDC message may reference several records through
``ChangeEventHeader.recordIds``. :meth:`CollapsedSubscriptionEvent.event_list`
fans it out into one :class:`SubscriptionEvent` per record.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Mapping, Optional

from ...core.context import CallContext
from ...core.errors import ConnectorError, ErrorTag
from ...core.logging import get_logger
from ...core.models import SubscribeParams, SubscriptionEventType, SubscriptionResult, SubscriptionStatus
from ...transport.client import JSONHTTPClient
from ...transport.urlbuilder import URL

LOGGER = get_logger(__name__)

HEADER_KEY = "ChangeEventHeader"
RECORD_ID_KEY = "recordId"
RECORD_IDS_KEY = "recordIds"
CHANNEL_SUFFIX = "__chn"
CHANNEL_MEMBER_PATH = "tooling/sobjects/PlatformEventChannelMember"

_EVENT_TYPES = {
    "CREATE": SubscriptionEventType.CREATE,
    "UPDATE": SubscriptionEventType.UPDATE,
    "DELETE": SubscriptionEventType.DELETE,
}

_ADDRESS = ("Address",)
_NAME = ("Name",)
_BILLING_SHIPPING = ("BillingAddress", "ShippingAddress")
_PAYMENT = ("PaymentMethodAddress",)

# Compound fields reported as ``Parent.Child`` in ``changedFields``, per object.
COMPOUND_FIELD_PREFIXES: Mapping[str, tuple[str, ...]] = {
    "account": ("BillingAddress", "ShippingAddress", "PersonMailingAddress", "PersonOtherAddress", "Name"),
    "contact": ("MailingAddress", "OtherAddress", "Name"),
    "lead": _ADDRESS + _NAME,
    "user": _ADDRESS + _NAME,
    "contract": _BILLING_SHIPPING,
    "order": _BILLING_SHIPPING,
    "servicecontract": _BILLING_SHIPPING,
    "quote": ("BillingAddress", "ShippingAddress", "AdditionalAddress", "QuoteToAddress"),
    "individual": _NAME,
    "organization": _ADDRESS,
    "asset": _ADDRESS,
    "location": _ADDRESS,
    "serviceappointment": _ADDRESS,
    "serviceterritory": _ADDRESS,
    "serviceterritorymember": _ADDRESS,
    "resourceabsence": _ADDRESS,
    "workorder": _ADDRESS,
    "workorderlineitem": _ADDRESS,
    "address": _ADDRESS,
    "contactpointaddress": _ADDRESS,
    "dandbcompany": ("Address", "MailingAddress"),
    "serviceresource": ("LastKnownLocation",),
    "shipment": ("ShipFromAddress", "ShipToAddress"),
    "returnorder": ("ShipFromAddress",),
    "productrequest": ("ShipToAddress",),
    "productrequestlineitem": ("ShipToAddress",),
    "fulfillmentorder": ("FulfilledFromAddress", "FulfilledToAddress"),
    "orderdeliverygroup": ("DeliverToAddress",),
    "cartdeliverygroup": ("DeliverToAddress",),
    "webcart": ("BillingAddress",),
    "cardpaymentmethod": _PAYMENT,
    "digitalwallet": _PAYMENT,
}


def _header(event: Mapping[str, Any]) -> Dict[str, Any]:
    if HEADER_KEY not in event:
        raise ConnectorError(ErrorTag.KEY_NOT_FOUND, f"'{HEADER_KEY}'")
    header = event[HEADER_KEY]
    if not isinstance(header, dict):
        raise ConnectorError(ErrorTag.PARSE_ERROR, f"key {HEADER_KEY} is not an object")
    return header


def _header_string(event: Mapping[str, Any], key: str) -> str:
    header = _header(event)
    if key not in header:
        raise ConnectorError(ErrorTag.KEY_NOT_FOUND, f"'{key}'")
    value = header[key]
    if not isinstance(value, str):
        raise ConnectorError(ErrorTag.PARSE_ERROR, f"key {key} is not a string")
    return value


class CollapsedSubscriptionEvent(dict):
    """A raw CDC message, possibly referencing several records."""

    def event_list(self) -> List["SubscriptionEvent"]:
        """
        Split the message into one event per record id.

        Every event is a deep copy of the message whose header carries a single
        ``recordId`` and no ``recordIds``.
        """

        record_ids = _header(self).get(RECORD_IDS_KEY)
        if not isinstance(record_ids, list):
            raise ConnectorError(ErrorTag.PARSE_ERROR, f"key {RECORD_IDS_KEY} is not an array")

        events: List[SubscriptionEvent] = []
        for record_id in record_ids:
            event = SubscriptionEvent(copy.deepcopy(dict(self)))
            header = _header(event)
            header[RECORD_ID_KEY] = record_id
            header.pop(RECORD_IDS_KEY, None)
            events.append(event)
        return events


class SubscriptionEvent(dict):
    """One change event about one record."""

    def raw_event_name(self) -> str:
        return _header_string(self, "changeType")

    def event_type(self) -> SubscriptionEventType:
        return _EVENT_TYPES.get(self.raw_event_name(), SubscriptionEventType.OTHER)

    def object_name(self) -> str:
        """API name of the changed object, e.g. ``Account`` or ``MyObject__c``."""

        return _header_string(self, "entityName")

    def record_id(self) -> str:
        return _header_string(self, RECORD_ID_KEY)

    def workspace(self) -> str:
        return ""

    def event_timestamp_nano(self) -> int:
        header = _header(self)
        if "commitTimestamp" not in header:
            raise ConnectorError(ErrorTag.KEY_NOT_FOUND, "'commitTimestamp'")
        value = header["commitTimestamp"]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConnectorError(ErrorTag.PARSE_ERROR, "key commitTimestamp is not numeric")
        return int(value)

    def updated_fields(self) -> List[str]:
        """
        Names listed in ``changedFields``.

        ``BillingAddress.City`` style entries are reduced to the component
        name when the prefix is a compound field of the event's object.
        """

        changed = _header(self).get("changedFields") or []
        if not isinstance(changed, list):
            raise ConnectorError(ErrorTag.PARSE_ERROR, "key changedFields is not an array")
        prefixes = {prefix.lower() for prefix in COMPOUND_FIELD_PREFIXES.get(self.object_name().lower(), ())}

        fields: List[str] = []
        for name in changed:
            name = str(name)
            parent, dot, child = name.partition(".")
            if dot and parent.lower() in prefixes:
                fields.append(child)
            else:
                fields.append(name)
        return fields


# -- event channel membership ----------------------------------------------------


def change_event_name(object_name: str) -> str:
    """``Account`` becomes ``AccountChangeEvent``; ``Thing__c`` becomes ``Thing__ChangeEvent``."""

    if object_name.endswith("__c"):
        return object_name[: -len("__c")] + "__ChangeEvent"
    return object_name + "ChangeEvent"


def raw_channel_name(channel: str) -> str:
    return channel[: -len(CHANNEL_SUFFIX)] if channel.endswith(CHANNEL_SUFFIX) else channel


def channel_member_payload(channel: str, object_name: str) -> Dict[str, Any]:
    raw = raw_channel_name(channel)
    event_name = change_event_name(object_name)
    return {
        "FullName": f"{raw}_chn_{event_name}",
        "Metadata": {
            "eventChannel": raw + CHANNEL_SUFFIX,
            "selectedEntity": event_name,
        },
    }


class ChannelMembers:
    """Tooling API calls managing ``PlatformEventChannelMember`` records."""

    def __init__(self, http: JSONHTTPClient, rest_url: Callable[..., URL]) -> None:
        self.http = http
        self.rest_url = rest_url

    def create(self, payload: Mapping[str, Any], *, context: Optional[CallContext] = None) -> Dict[str, Any]:
        body = self.http.post(self.rest_url(CHANNEL_MEMBER_PATH), dict(payload), context=context).unmarshal()
        if not isinstance(body, dict):
            raise ConnectorError(ErrorTag.FAILED_TO_UNMARSHAL_BODY, "channel member response is not a JSON object")
        member = dict(payload)
        member["Id"] = str(body.get("id") or "")
        return member

    def delete(self, member_id: str, *, context: Optional[CallContext] = None) -> None:
        url: URL = self.rest_url(CHANNEL_MEMBER_PATH, member_id)
        self.http.delete(url, context=context)

    def subscribe(self, params: SubscribeParams, *, context: Optional[CallContext] = None) -> SubscriptionResult:
        """
        Create one channel member per object, rolling back on the first failure.

        A failed subscription reports ``failed`` when every created member was
        removed again and ``failed_to_rollback`` otherwise; the error of the
        failing object is attached to the result.
        """

        params.validate()
        members: Dict[str, Dict[str, Any]] = {}
        failure: Optional[Exception] = None
        for object_name in params.objects:
            try:
                members[object_name] = self.create(channel_member_payload(params.channel, object_name), context=context)
            except ConnectorError as exc:
                failure = exc
                LOGGER.warning("Channel member creation failed", extra={"object": object_name, "error": str(exc)})
                break

        if failure is None:
            return SubscriptionResult(
                status=SubscriptionStatus.SUCCESS,
                objects=list(members),
                events=[SubscriptionEventType.CREATE, SubscriptionEventType.UPDATE, SubscriptionEventType.DELETE],
                result={"members": members},
            )

        rollback_errors: Dict[str, Exception] = {}
        for object_name, member in list(members.items()):
            try:
                self.delete(member["Id"], context=context)
            except ConnectorError as exc:
                rollback_errors[object_name] = exc
            else:
                del members[object_name]

        status = SubscriptionStatus.FAILED_TO_ROLLBACK if rollback_errors else SubscriptionStatus.FAILED
        return SubscriptionResult(
            status=status,
            objects=list(members),
            result={"members": members, "error": failure, "rollback_errors": rollback_errors},
        )

    def delete_subscription(self, result: SubscriptionResult, *, context: Optional[CallContext] = None) -> None:
        """Remove every channel member recorded in ``result``."""

        payload = result.result if isinstance(result.result, Mapping) else {}
        members = payload.get("members")
        if not isinstance(members, Mapping):
            raise ConnectorError(ErrorTag.MISSING_EXPECTED_VALUES, "subscription result has no channel members")
        for object_name, member in members.items():
            member_id = member.get("Id") if isinstance(member, Mapping) else None
            if not member_id:
                raise ConnectorError(ErrorTag.MISSING_RECORD_ID, f"channel member of '{object_name}' has no id")
            self.delete(member_id, context=context)
